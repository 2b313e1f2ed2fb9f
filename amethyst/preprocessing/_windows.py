#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
aggregate single-cell methylation calls over genomic windows or regions

"""
import time
import warnings
from concurrent.futures import ProcessPoolExecutor
from functools import partial

import numpy as np
import pandas as pd
import anndata as ad

from .. import logging as logg
from .._settings import settings
from .._check import check_anndata, check_in, check_positive
from .._utils import window_name, how_many_time
from ..io import iter_cell_blocks
from ._index import get_index, cell_blocks
from ._reference import get_gene_regions

# ignore division by 0 and division by NaN error
np.seterr(divide="ignore", invalid="ignore")

COUNT_COLUMNS = ["n_meth", "n_unmeth", "n_sites", "score_sum"]


def _site_values(rows):
    c = rows["c"]
    t = rows["t"]
    return (c > 0).astype(np.float64), (t > 0).astype(np.float64), np.sign(c.astype(np.int64) - t).astype(np.float64)


def _fixed_window_counts(chrom, rows, stepsize):
    meth, unmeth, score = _site_values(rows)
    wid = rows["pos"] // stepsize
    uniq, inv = np.unique(wid, return_inverse=True)
    start = uniq * stepsize
    end = start + stepsize
    return pd.DataFrame({
        "name": [window_name(chrom, s, e) for s, e in zip(start, end)],
        "chr": chrom,
        "start": start,
        "end": end,
        "n_meth": np.bincount(inv, weights=meth),
        "n_unmeth": np.bincount(inv, weights=unmeth),
        "n_sites": np.bincount(inv),
        "score_sum": np.bincount(inv, weights=score),
    })


def _region_counts(chrom, rows, regions):
    order = np.argsort(rows["pos"], kind="stable")
    pos = rows["pos"][order]
    meth, unmeth, score = (x[order] for x in _site_values(rows))
    starts = regions["start"].to_numpy()
    ends = regions["end"].to_numpy()
    lo = np.searchsorted(pos, starts, side="left")
    hi = np.searchsorted(pos, ends, side="right")

    def window_sum(x):
        cs = np.r_[0, np.cumsum(x)]
        return cs[hi] - cs[lo]

    n_sites = hi - lo
    keep = n_sites > 0
    return pd.DataFrame({
        "name": regions["name"].to_numpy()[keep],
        "chr": chrom,
        "start": starts[keep],
        "end": ends[keep],
        "n_meth": window_sum(meth)[keep],
        "n_unmeth": window_sum(unmeth)[keep],
        "n_sites": n_sites[keep],
        "score_sum": window_sum(score)[keep],
    })


def _cell_window_counts(cell, context, stepsize=None, regions=None):
    """
    count methylated / unmethylated sites of one cell per window

    Args:
        cell: (barcode, h5path, {chrom: (start, count)})
        stepsize: fixed window size, or
        regions: {chrom: DataFrame(start, end, name)}

    Returns:
        DataFrame with name, chr, start, end, n_meth, n_unmeth, n_sites, score_sum
    """
    barcode, path, blocks = cell
    if regions is not None:
        blocks = {chrom: blocks[chrom] for chrom in blocks if chrom in regions}
    if not blocks:
        return pd.DataFrame(columns=["name", "chr", "start", "end"] + COUNT_COLUMNS)
    frames = []
    for chrom, rows in iter_cell_blocks(path, barcode, context, blocks):
        if len(rows) == 0:
            continue
        if stepsize is not None:
            frames.append(_fixed_window_counts(chrom, rows, stepsize))
        else:
            frames.append(_region_counts(chrom, rows, regions[chrom]))
    if not frames:
        return pd.DataFrame(columns=["name", "chr", "start", "end"] + COUNT_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def _metric(counts, metric, global_pct=None):
    n_meth = counts["n_meth"].to_numpy(dtype=float)
    n_unmeth = counts["n_unmeth"].to_numpy(dtype=float)
    if metric == "score":
        return counts["score_sum"].to_numpy(dtype=float) / counts["n_sites"].to_numpy(dtype=float)
    percent = 100 * n_meth / (n_meth + n_unmeth)
    if metric == "ratio":
        return percent / global_pct
    return percent


def _read_regions(bed):
    if isinstance(bed, pd.DataFrame):
        regions = bed.copy()
        if not {"chr", "start", "end"}.issubset(regions.columns):
            regions = regions.iloc[:, :4]
            regions.columns = ["chr", "start", "end", "name"][:regions.shape[1]]
    else:
        regions = pd.read_table(bed, header=None, comment="#", dtype={0: str})
        regions = regions.iloc[:, :4]
        regions.columns = ["chr", "start", "end", "name"][:regions.shape[1]]
    regions["start"] = regions["start"].astype(np.int64)
    regions["end"] = regions["end"].astype(np.int64)
    if "name" not in regions.columns:
        regions["name"] = [window_name(c, s, e) for c, s, e in regions[["chr", "start", "end"]].itertuples(index=False)]
    regions["name"] = regions["name"].astype(str)
    dup = regions.groupby("name").cumcount()
    regions.loc[dup > 0, "name"] = regions.loc[dup > 0, "name"] + "-" + dup[dup > 0].astype(str)
    return regions[["chr", "start", "end", "name"]].reset_index(drop=True)


def collect_window_counts(adata, context="CG", stepsize=None, regions=None, index=None, threads=None, chroms=None):
    """Run the per-cell window counting over all cells; returns {barcode: counts}."""
    threads = threads or settings.n_jobs
    index = get_index(adata, context, index)
    if chroms is not None:
        index = index[index["chr"].isin(chroms)]
    blocks = cell_blocks(index)
    cells = [(barcode, path, blocks.get(barcode, {})) for barcode, path in adata.obs["h5path"].items()]
    by_chrom = None
    if regions is not None:
        by_chrom = {chrom: df.reset_index(drop=True) for chrom, df in regions.groupby("chr", sort=False)}
    worker = partial(_cell_window_counts, context=context, stepsize=stepsize, regions=by_chrom)
    if threads > 1:
        with ProcessPoolExecutor(max_workers=threads) as executor:
            results = list(executor.map(worker, cells, chunksize=max(1, len(cells) // (threads * 4))))
    else:
        results = [worker(cell) for cell in cells]
    return {cell[0]: res for cell, res in zip(cells, results)}


def make_windows(adata,
                 stepsize=None,
                 bed=None,
                 genes=None,
                 ref=None,
                 context="CG",
                 metric="percent",
                 nmin=2,
                 promoter=0,
                 index=None,
                 threads=None):
    """
    Aggregate per-cell methylation over fixed windows, bed regions or gene bodies.

    Args:
        adata (AnnData): cell object with an index from `index_chrom`.
        stepsize (int, optional): fixed window size in bp; windows are ``[start, start + stepsize)``.
        bed (str or pd.DataFrame, optional): regions ``chr, start, end[, name]``, closed intervals.
        genes (list, optional): gene names (or "all") looked up in `ref`.
        ref (pd.DataFrame, optional): annotation from `make_ref`, needed with `genes`.
        context (str, optional): "CG" or "CH". Defaults to "CG".
        metric (str, optional): "percent", "score" or "ratio". Defaults to "percent".
            percent: 100 * methylated sites / observed sites;
            score: mean of sign(c - t), from -1 to 1;
            ratio: percent divided by the cell's global ``m{context}_pct``.
        nmin (int, optional): minimum observed sites for a value, fewer gives NaN. Defaults to 2.
        promoter (int, optional): bp added upstream of genes. Defaults to 0.
        index (str, optional): index key, defaults to ``chr_{context}``.
        threads (int, optional): worker processes, defaults to ``settings.n_jobs``.

    Returns:
        AnnData (cells x features) with NaN for unobserved features; ``var`` holds
        ``chromosome``, ``start``, ``end``, ``covered_cell`` and ``var``.

    Example:
        w100k = amethyst.pp.make_windows(obj, stepsize=100000, metric="score")
        gene_ch = amethyst.pp.make_windows(obj, genes="all", ref=ref, context="CH", metric="ratio")
    """
    check_anndata(adata)
    check_in(["percent", "score", "ratio"], metric=metric)
    check_positive(nmin=nmin)
    if sum(x is not None for x in (stepsize, bed, genes)) != 1:
        raise ValueError("Provide exactly one of stepsize, bed or genes.")

    regions = None
    if stepsize is not None:
        check_positive(stepsize=stepsize)
        stepsize = int(stepsize)
        feature = f"{stepsize // 1000}kb windows" if stepsize >= 1000 else f"{stepsize}bp windows"
    elif bed is not None:
        regions = _read_regions(bed)
        feature = f"{len(regions)} regions"
    else:
        if ref is None:
            raise ValueError("A reference from make_ref is required to aggregate over genes.")
        regions = get_gene_regions(ref, None if isinstance(genes, str) and genes == "all" else genes, promoter)
        feature = f"{len(regions)} genes"

    global_pct = None
    if metric == "ratio":
        pct_key = f"m{context.lower()}_pct"
        if pct_key not in adata.obs.columns:
            raise KeyError(f"'{pct_key}' is not present in adata.obs. Please run add_cell_info or cell_stats first!")
        global_pct = adata.obs[pct_key].astype(float)

    tbegin = time.time()
    logg.info(f"...calculating {context} {metric} over {feature} for {adata.n_obs} cells", reset=True)
    counts = collect_window_counts(adata, context, stepsize, regions, index, threads)

    values = {}
    meta = []
    for barcode, cell_counts in counts.items():
        cell_counts = cell_counts[cell_counts["n_sites"] >= nmin]
        if cell_counts.empty:
            continue
        pct = None if global_pct is None else global_pct[barcode]
        values[barcode] = pd.Series(_metric(cell_counts, metric, pct), index=cell_counts["name"].to_numpy())
        meta.append(cell_counts[["name", "chr", "start", "end"]])

    if not values:
        raise ValueError(f"No feature has at least {nmin} observed sites in any cell.")
    meta = pd.concat(meta, ignore_index=True).drop_duplicates("name")
    if stepsize is not None:
        meta = meta.sort_values(["chr", "start"], kind="mergesort")
    else:
        meta = meta.set_index("name")
        meta = meta.loc[[n for n in regions["name"] if n in meta.index]].reset_index()
    names = meta["name"].to_numpy()

    matrix = pd.DataFrame(values).reindex(index=names, columns=adata.obs_names).T
    X = matrix.to_numpy(dtype=np.float32)
    keep = ~np.all(np.isnan(X), axis=0)
    X, meta = X[:, keep], meta[keep]

    var = pd.DataFrame({
        "chromosome": meta["chr"].to_numpy(),
        "start": meta["start"].to_numpy(dtype=np.int64),
        "end": meta["end"].to_numpy(dtype=np.int64),
    }, index=meta["name"].astype(str).to_numpy())
    covered = np.sum(~np.isnan(X), axis=0)
    var["covered_cell"] = covered
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=RuntimeWarning)
        var["var"] = np.where(covered > 1, np.nanvar(X, axis=0), np.nan)

    wdata = ad.AnnData(X=X, obs=adata.obs.copy(), var=var)
    if not wdata.var_names.is_unique:
        wdata.var_names_make_unique()
    wdata.uns['windows'] = {
        "context": context,
        "metric": metric,
        "nmin": int(nmin),
        "stepsize": -1 if stepsize is None else stepsize,
    }
    logg.info(f"...{wdata.n_vars} features, {how_many_time(tbegin, time.time())}", time=True)
    return wdata
