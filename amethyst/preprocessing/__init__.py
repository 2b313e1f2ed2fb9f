#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
cell objects, genome matrices and reductions

"""
from ._object import create_object, add_cell_info, add_annot, transfer_obs, cell_stats, filter_cells
from ._index import index_chrom, get_index
from ._reference import make_ref, get_gene_regions, get_gene_model
from ._windows import make_windows, collect_window_counts
from .filter import filter_features, select_features, fill_na
from .dimension_reduction import run_irlba, dim_estimate, regress_cov_bias, run_umap, run_tsne
from .impute import impute

__all__ = [
    "create_object",
    "add_cell_info",
    "add_annot",
    "transfer_obs",
    "cell_stats",
    "filter_cells",
    "index_chrom",
    "get_index",
    "make_ref",
    "get_gene_regions",
    "get_gene_model",
    "make_windows",
    "collect_window_counts",
    "filter_features",
    "select_features",
    "fill_na",
    "run_irlba",
    "dim_estimate",
    "regress_cov_bias",
    "run_umap",
    "run_tsne",
    "impute",
]
