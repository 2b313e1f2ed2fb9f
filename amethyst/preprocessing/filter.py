#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
feature filtering and selection for genome matrices

"""
import numpy as np
import pandas as pd

from .. import logging as logg
from .._check import check_anndata, check_between


def _covered_cells(adata):
    if "covered_cell" in adata.var.columns:
        return adata.var["covered_cell"].to_numpy()
    return np.sum(~np.isnan(np.asarray(adata.X, dtype=float)), axis=0)


def filter_features(adata, min_cells=None, min_frac=None, max_var=None, chrom_exclude=None, inplace=True):
    """
    Keep features observed in enough cells.

    Parameters
    ----------
    adata
        Genome matrix from `make_windows`.
    min_cells
        Minimum number of cells with a value.
    min_frac
        Minimum fraction of cells with a value, e.g. 0.1.
    max_var
        Maximum variance across cells, removes outlier features.
    chrom_exclude
        Chromosomes to drop, e.g. ["chrX", "chrY", "chrM"].
    inplace
        Subset `adata` in place, otherwise return the boolean mask.

    Returns
    -------
    np.ndarray | None
        If `inplace = False`, a mask where `True` means the feature is kept.
    """
    check_anndata(adata)
    covered = _covered_cells(adata)
    selected = np.ones(adata.n_vars, dtype=bool)
    if min_cells is not None:
        selected &= covered >= min_cells
    if min_frac is not None:
        check_between(0, 1, min_frac=min_frac)
        selected &= covered >= min_frac * adata.n_obs
    if max_var is not None:
        selected &= ~(adata.var["var"].to_numpy(dtype=float) > max_var)
    if chrom_exclude is not None:
        selected &= ~adata.var["chromosome"].isin(chrom_exclude).to_numpy()
    logg.info(f"{selected.sum()} / {adata.n_vars} features passed the filter.")
    if inplace:
        adata._inplace_subset_var(selected)
        return None
    return selected


def select_features(adata, n_features=2000, key="var", key_added="feature_select"):
    """Flag the ``n_features`` features with the highest ``var[key]`` in ``var[key_added]``."""
    check_anndata(adata)
    if key not in adata.var.columns:
        raise KeyError(f"'{key}' is not present in adata.var. Please run make_windows first!")
    df = adata.var
    top = df[key].sort_values(ascending=False, na_position="last").index[:n_features]
    adata.var[key_added] = df.index.isin(top)
    logg.info(f"Selected {int(adata.var[key_added].sum())} features by {key}.")
    return adata


def fill_na(X, replace_na=0):
    """Replace NaN with a value, or with the feature mean when ``replace_na='mean'``."""
    X = np.array(X, dtype=np.float64)
    if replace_na == "mean":
        # pandas skips NaN; all-NaN features fall back to 0
        means = pd.DataFrame(X).mean(axis=0).fillna(0).to_numpy()
        rows, cols = np.where(np.isnan(X))
        X[rows, cols] = means[cols]
        return X
    X[np.isnan(X)] = replace_na
    return X
