#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
pseudobulk methylation of cell groups over smoothed windows

"""
import time

import numpy as np
import pandas as pd

from .. import logging as logg
from .._check import check_anndata, check_obs_key, check_positive, check_int
from .._utils import how_many_time
from ..preprocessing._windows import collect_window_counts

# ignore division by 0 and division by NaN error
np.seterr(divide="ignore", invalid="ignore")


def _smooth_chrom(df, step, smooth):
    """Centred rolling sum over `smooth` consecutive windows of one chromosome."""
    observed = df.index.to_numpy()
    grid = np.arange(observed.min(), observed.max() + step, step)
    full = df.reindex(grid, fill_value=0)
    rolled = full.rolling(window=smooth, center=True, min_periods=1).sum()
    return rolled.loc[observed]


def calc_smoothed_windows(adata, context="CG", step=500, smooth=3, group_by="cluster_id",
                          index=None, threads=None, chroms=None):
    """
    Sum methylated and unmethylated sites of every cell group over fixed windows.

    Each window of `step` bp collects the sites of all cells in a group; counts
    are then summed over `smooth` neighbouring windows centred on it.

    Args:
        adata (AnnData): cell object (or genome matrix) with ``h5path`` and an index.
        context (str, optional): "CG" or "CH". Defaults to "CG".
        step (int, optional): window size in bp. Defaults to 500.
        smooth (int, optional): number of windows in the rolling sum. Defaults to 3.
        group_by (str, optional): ``obs`` column with the groups. Defaults to "cluster_id".
        index (str, optional): index key, defaults to ``chr_{context}``.
        threads (int, optional): worker processes, defaults to ``settings.n_jobs``.
        chroms (list, optional): restrict to these chromosomes.

    Returns:
        dict with ``pct_matrix`` (``chr, start, end`` and one percent column per
        group) and ``sum_matrix`` (``chr, start, end`` and ``{group}_c`` /
        ``{group}_t`` columns).

    Example:
        smoothed = amethyst.tl.calc_smoothed_windows(obj, step=500, smooth=3)
        dmr = amethyst.tl.test_dmr(smoothed["sum_matrix"])
    """
    check_anndata(adata)
    check_obs_key(adata, group_by, "Please run run_cluster or transfer_obs first!")
    check_positive(step=step, smooth=smooth)
    check_int(step=step, smooth=smooth)

    labels = adata.obs[group_by]
    groups = [str(g) for g in (labels.cat.categories if isinstance(labels.dtype, pd.CategoricalDtype)
                               else pd.unique(labels.dropna()))]
    tbegin = time.time()
    logg.info(f"...summing {context} sites of {len(groups)} groups over {step}bp windows", reset=True)
    counts = collect_window_counts(adata, context, stepsize=step, index=index, threads=threads, chroms=chroms)

    frames = []
    for barcode, cell_counts in counts.items():
        label = labels[barcode]
        if pd.isna(label) or cell_counts.empty:
            continue
        frames.append(cell_counts[["chr", "start", "n_meth", "n_unmeth"]].assign(group=str(label)))
    if not frames:
        raise ValueError("No methylation calls found for any grouped cell.")
    long = pd.concat(frames, ignore_index=True)
    summed = long.groupby(["chr", "start", "group"])[["n_meth", "n_unmeth"]].sum()
    wide = summed.unstack("group", fill_value=0)

    columns = []
    for g in groups:
        columns += [("n_meth", g), ("n_unmeth", g)]
    wide = wide.reindex(columns=pd.MultiIndex.from_tuples(columns), fill_value=0)
    wide.columns = [f"{g}_{'c' if kind == 'n_meth' else 't'}" for kind, g in wide.columns]

    smoothed = []
    for chrom, df in wide.groupby(level="chr", sort=True):
        df = df.droplevel("chr")
        df = _smooth_chrom(df, step, smooth)
        df.insert(0, "chr", chrom)
        smoothed.append(df)
    sum_matrix = pd.concat(smoothed).rename_axis("start").reset_index()
    sum_matrix.insert(2, "end", sum_matrix["start"] + step)
    sum_matrix = sum_matrix[["chr", "start", "end"] + [c for c in sum_matrix.columns if c not in ("chr", "start", "end")]]
    sum_matrix[sum_matrix.columns[3:]] = sum_matrix[sum_matrix.columns[3:]].astype(np.int64)

    pct_matrix = sum_matrix[["chr", "start", "end"]].copy()
    for g in groups:
        c = sum_matrix[f"{g}_c"].to_numpy(dtype=float)
        t = sum_matrix[f"{g}_t"].to_numpy(dtype=float)
        pct_matrix[g] = np.where(c + t > 0, 100 * c / (c + t), np.nan)
    logg.info(f"...{len(sum_matrix)} windows, {how_many_time(tbegin, time.time())}", time=True)
    return {"pct_matrix": pct_matrix, "sum_matrix": sum_matrix}
