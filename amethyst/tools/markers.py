#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
marker features of cell groups

"""
import time
import warnings
from concurrent.futures import ProcessPoolExecutor
from functools import partial

import numpy as np
import pandas as pd
from scipy.stats import mannwhitneyu
from statsmodels.stats.multitest import multipletests
from tqdm import tqdm

from .. import logging as logg
from .._settings import settings
from .._check import check_anndata, check_obs_key
from .._utils import how_many_time, to_dense

PSEUDOCOUNT = 1e-3
MARKER_COLUMNS = ["gene", "cluster_id", "mean_1", "mean_2", "logFC", "direction", "p_val"]


def adjust_pvalues(p_values, method="bonferroni"):
    """Multiple-testing correction ignoring NaN entries."""
    p_values = np.asarray(p_values, dtype=float)
    p_adj = np.full(p_values.shape, np.nan)
    ok = np.isfinite(p_values)
    if ok.any():
        p_adj[ok] = multipletests(p_values[ok], method=method)[1]
    return p_adj


def log_fold_change(mean_1, mean_2, pseudocount=PSEUDOCOUNT):
    return np.log2((np.asarray(mean_1, dtype=float) + pseudocount) / (np.asarray(mean_2, dtype=float) + pseudocount))


def _group_order(column, labels):
    """Groups in category order when categorical, else in order of appearance."""
    present = set(labels)
    if isinstance(column.dtype, pd.CategoricalDtype):
        return [str(g) for g in column.cat.categories if str(g) in present]
    return list(pd.unique(labels))


def _labelled(column):
    """Group labels as strings and the mask of cells that carry one."""
    mask = column.notna().to_numpy()
    if not mask.all():
        logg.warn(f"{(~mask).sum()} cells have no '{column.name}' label and are left out")
    return column[mask].astype(str).to_numpy(), mask


def _test_features(block, labels, groups):
    """Mann-Whitney U of each group against the rest for a block of features."""
    names, X = block
    rows = []
    for j, name in enumerate(names):
        x = X[:, j]
        observed = ~np.isnan(x)
        for g in groups:
            in_group = labels == g
            a = x[in_group & observed]
            b = x[~in_group & observed]
            if len(a) == 0 or len(b) == 0:
                continue
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", category=RuntimeWarning)
                p = mannwhitneyu(a, b, alternative="two-sided").pvalue
            rows.append((name, g, a.mean(), b.mean(), p))
    return rows


def find_cluster_markers(adata, group_by="cluster_id", genes=None, method="bonferroni", layer=None,
                         threads=None, key_added="cluster_markers"):
    """
    Test every feature for differential methylation in each group versus all other cells.

    Args:
        adata (AnnData): genome matrix, usually gene body methylation.
        group_by (str, optional): ``obs`` column with the groups. Defaults to "cluster_id".
        genes (list, optional): features to test, defaults to all.
        method (str, optional): statsmodels correction applied within each group. Defaults to "bonferroni".
        layer (str, optional): layer to test instead of ``X``.
        threads (int, optional): worker processes, defaults to ``settings.n_jobs``.
        key_added (str, optional): ``uns`` key for the result table.

    Returns:
        pd.DataFrame with ``gene``, ``cluster_id``, ``mean_1`` (group), ``mean_2``
        (rest), ``logFC`` (log2 with pseudocount 1e-3), ``direction``
        ("hypermethylated" / "hypomethylated"), ``p_val`` and ``p_adj``.

    Example:
        markers = amethyst.tl.find_cluster_markers(gene_ch, group_by="cluster_id")
        amethyst.get.markers_df(gene_ch, p_threshold=0.05)
    """
    check_anndata(adata)
    check_obs_key(adata, group_by, "Please run run_cluster first!")
    threads = threads or settings.n_jobs
    data = adata
    if genes is not None:
        genes = [g for g in genes if g in adata.var_names]
        if not genes:
            raise ValueError("None of the requested genes is present in adata.var_names")
        data = adata[:, genes]
    X = to_dense(data.X if layer is None else data.layers[layer]).astype(float)
    labels, mask = _labelled(data.obs[group_by])
    X = X[mask]
    groups = _group_order(data.obs[group_by], labels)

    tbegin = time.time()
    logg.info(f"...testing {data.n_vars} features in {len(groups)} groups", reset=True)
    n_blocks = max(1, min(threads * 4, data.n_vars))
    splits = np.array_split(np.arange(data.n_vars), n_blocks)
    blocks = [(data.var_names[s].to_numpy(), X[:, s]) for s in splits if len(s)]
    worker = partial(_test_features, labels=labels, groups=groups)
    if threads > 1:
        with ProcessPoolExecutor(max_workers=threads) as executor:
            results = list(tqdm(executor.map(worker, blocks), total=len(blocks), disable=settings.verbosity < 3))
    else:
        results = [worker(block) for block in blocks]

    rows = [row for res in results for row in res]
    df = pd.DataFrame(rows, columns=["gene", "cluster_id", "mean_1", "mean_2", "p_val"])
    df["logFC"] = log_fold_change(df["mean_1"], df["mean_2"])
    df["direction"] = np.where(df["logFC"] > 0, "hypermethylated", "hypomethylated")
    df["p_adj"] = np.nan
    for g, idx in df.groupby("cluster_id").groups.items():
        df.loc[idx, "p_adj"] = adjust_pvalues(df.loc[idx, "p_val"], method)
    df = df[MARKER_COLUMNS + ["p_adj"]].copy()
    df["cluster_id"] = pd.Categorical(df["cluster_id"], categories=list(groups))
    df = df.sort_values(["cluster_id", "p_val"], kind="mergesort").reset_index(drop=True)
    adata.uns[key_added] = df
    logg.info(f"...{how_many_time(tbegin, time.time())}", time=True)
    return df


def aggregate_matrix(adata, group_by="cluster_id", layer=None):
    """Mean value of every feature per group, ignoring NaN; features x groups."""
    check_anndata(adata)
    check_obs_key(adata, group_by)
    X = to_dense(adata.X if layer is None else adata.layers[layer]).astype(float)
    labels, mask = _labelled(adata.obs[group_by])
    df = pd.DataFrame(X[mask], index=adata.obs_names[mask], columns=adata.var_names)
    means = df.groupby(labels, sort=True).mean()
    return means.reindex(_group_order(adata.obs[group_by], labels)).T
