#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
cell object construction and metadata

"""
import os
import warnings

import numpy as np
import pandas as pd
import anndata as ad
from anndata import ImplicitModificationWarning

from .. import logging as logg
from .._check import check_anndata
from ..io import list_barcodes, read_cell_calls, summarize_calls

warnings.filterwarnings("ignore", category=ImplicitModificationWarning)


def create_object(h5paths, metadata=None, context="CG"):
    """
    Create the cell object that links every cell to its call store.

    Args:
        h5paths: barcode -> HDF5 path, as a DataFrame with a ``path`` column, a
            Series, a dict, or a single HDF5 path holding all cells (barcodes are
            read from its `context` group).
        metadata (pd.DataFrame, optional): per-cell metadata indexed by barcode.
        context (str, optional): group used to list barcodes of a single file.

    Returns:
        AnnData with one observation per cell and no features; ``obs['h5path']``
        holds the store of each cell.

    Example:
        obj = amethyst.pp.create_object("cells.h5")
    """
    if isinstance(h5paths, (str, os.PathLike)):
        barcodes = list_barcodes(h5paths, context)
        if not barcodes:
            raise ValueError(f"No {context} cells found in {h5paths}")
        paths = pd.Series(str(h5paths), index=barcodes)
    elif isinstance(h5paths, pd.DataFrame):
        if "path" not in h5paths.columns:
            raise KeyError("h5paths DataFrame needs a 'path' column")
        paths = h5paths["path"].astype(str)
    elif isinstance(h5paths, dict):
        paths = pd.Series(h5paths, dtype=str)
    elif isinstance(h5paths, pd.Series):
        paths = h5paths.astype(str)
    else:
        raise TypeError(f"h5paths of type {type(h5paths).__name__} is not supported")

    if paths.index.has_duplicates:
        raise ValueError("Duplicated cell barcodes in h5paths")
    obs = pd.DataFrame({"h5path": paths.to_numpy()}, index=paths.index.astype(str))
    obs.index.name = None
    adata = ad.AnnData(obs=obs)
    if metadata is not None:
        add_cell_info(adata, metadata)
    adata.uns['index'] = {}
    logg.info(f"...created object with {adata.n_obs} cells")
    return adata


def _read_table(info):
    if isinstance(info, pd.DataFrame):
        return info.copy()
    sep = "\t" if str(info).endswith((".tsv", ".txt", ".tsv.gz", ".txt.gz")) else ","
    return pd.read_csv(info, sep=sep, index_col=0)


def add_cell_info(adata, info, overwrite=True):
    """
    Join a per-cell table (e.g. ``cov``, ``mcg_pct``, ``mch_pct``) to ``adata.obs``.

    Cells absent from the table get NaN, rows for unknown cells are ignored.
    """
    check_anndata(adata)
    info = _read_table(info)
    info.index = info.index.astype(str)
    n_known = info.index.isin(adata.obs_names).sum()
    if n_known == 0:
        raise ValueError("None of the cells in the table match adata.obs_names")
    if n_known < adata.n_obs:
        logg.warn(f"{adata.n_obs - n_known} cells have no entry in the cell info table")
    info = info.reindex(adata.obs_names)
    for col in info.columns:
        if col in adata.obs.columns and not overwrite:
            continue
        adata.obs[col] = info[col].to_numpy()
    return adata


def add_annot(adata, annot, name):
    """Attach one annotation (Series, dict or single-column table) as ``obs[name]``."""
    check_anndata(adata)
    if isinstance(annot, dict):
        annot = pd.Series(annot)
    elif isinstance(annot, pd.Series):
        annot = annot.copy()
    else:
        table = _read_table(annot)
        annot = table.iloc[:, 0]
    annot.index = annot.index.astype(str)
    adata.obs[name] = annot.reindex(adata.obs_names).to_numpy()
    return adata


def transfer_obs(source, target, keys):
    """Copy ``obs`` columns between objects sharing cells, e.g. cluster labels onto a gene matrix."""
    if isinstance(keys, str):
        keys = [keys]
    for key in keys:
        if key not in source.obs.columns:
            raise KeyError(f"'{key}' is not present in source.obs")
        target.obs[key] = source.obs[key].reindex(target.obs_names).to_numpy()
        if isinstance(source.obs[key].dtype, pd.CategoricalDtype):
            target.obs[key] = pd.Categorical(
                target.obs[key], categories=source.obs[key].cat.categories
            )
    return target


def cell_stats(adata, context="CG"):
    """Compute ``n_sites``, ``cov`` and ``m{context}_pct`` from the call store."""
    check_anndata(adata)
    stats = {}
    for barcode, path in adata.obs["h5path"].items():
        try:
            calls = read_cell_calls(path, barcode, context)
        except KeyError:
            logg.warn(f"No {context} calls for {barcode}")
            continue
        stats[barcode] = summarize_calls(calls, context)
    df = pd.DataFrame.from_dict(stats, orient="index")
    return add_cell_info(adata, df)


def filter_cells(adata, min_cov=None, max_cov=None, min_mcg=None, max_mcg=None,
                 pct_key="mcg_pct", cov_key="cov", inplace=False):
    """
    Keep cells within coverage and global methylation bounds.

    Returns a filtered copy, or the boolean mask when ``inplace`` is True and
    the object is subset in place.
    """
    check_anndata(adata)
    keep = np.ones(adata.n_obs, dtype=bool)
    if min_cov is not None or max_cov is not None:
        cov = adata.obs[cov_key].to_numpy(dtype=float)
        if min_cov is not None:
            keep &= cov >= min_cov
        if max_cov is not None:
            keep &= cov <= max_cov
    if min_mcg is not None or max_mcg is not None:
        pct = adata.obs[pct_key].to_numpy(dtype=float)
        if min_mcg is not None:
            keep &= pct >= min_mcg
        if max_mcg is not None:
            keep &= pct <= max_mcg
    logg.info(f"{keep.sum()} / {adata.n_obs} cells ({keep.mean() * 100:.1f}%) passed the filter.")
    if inplace:
        adata._inplace_subset_obs(keep)
        return keep
    return adata[keep].copy()
