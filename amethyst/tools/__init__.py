#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
clustering, markers, DMRs and enrichment

"""
from .clustering import run_cluster, get_n_clusters, jaccard_graph
from .markers import find_cluster_markers, aggregate_matrix
from .smooth import calc_smoothed_windows
from .dmr import test_dmr, filter_dmr, collapse_dmr
from .enrichment import read_gaf, read_gene2go, load_go_dag, go_enrichment

__all__ = [
    "run_cluster",
    "get_n_clusters",
    "jaccard_graph",
    "find_cluster_markers",
    "aggregate_matrix",
    "calc_smoothed_windows",
    "test_dmr",
    "filter_dmr",
    "collapse_dmr",
    "read_gaf",
    "read_gene2go",
    "load_go_dag",
    "go_enrichment",
]
