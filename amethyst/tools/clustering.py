#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
graph clustering of cells (PhenoGraph)

"""
from typing_extensions import Literal

import numpy as np
import pandas as pd
import scipy.sparse as ss
from sklearn.neighbors import NearestNeighbors

from .. import logging as logg
from .._check import check_anndata, check_obsm_key, check_positive, check_in
from .._utils import get_igraph_from_adjacency


def jaccard_graph(X, k=10):
    """
    Jaccard-weighted kNN graph.

    Each cell is linked to its `k` nearest neighbours; the weight of an edge is
    the Jaccard index of the two cells' neighbour sets (each set includes the
    cell itself). Returns a symmetric sparse matrix.
    """
    n = X.shape[0]
    k = min(k, n - 1)
    ind = NearestNeighbors(n_neighbors=k + 1).fit(X).kneighbors(X, return_distance=False)
    member = ss.csr_matrix((np.ones(ind.size), (np.repeat(np.arange(n), k + 1), ind.ravel())), shape=(n, n))
    member.data[:] = 1
    edges = member.copy()
    edges.setdiag(0)
    edges.eliminate_zeros()
    shared = edges.multiply(member @ member.T).tocoo()
    union = 2 * (k + 1) - shared.data
    weights = ss.coo_matrix((shared.data / union, (shared.row, shared.col)), shape=(n, n)).tocsr()
    return weights.maximum(weights.T)


def _relabel_by_size(membership):
    """Cluster labels "1".."n", "1" being the largest cluster."""
    membership = np.asarray(membership)
    groups, counts = np.unique(membership, return_counts=True)
    order = groups[np.argsort(-counts, kind="stable")]
    mapping = {g: str(i + 1) for i, g in enumerate(order)}
    labels = [mapping[m] for m in membership]
    return pd.Categorical(labels, categories=[str(i + 1) for i in range(len(order))])


def run_cluster(
        adata,
        k: int = 10,
        use_rep: str = "X_irlba_regressed",
        method: Literal['leiden', 'louvain'] = 'leiden',
        resolution: float = 1.0,
        n_iterations: int = -1,
        random_state: int = 0,
        key_added: str = 'cluster_id',
        inplace: bool = True,
):
    """
    Cluster cells into subgroups on a Jaccard-weighted kNN graph.

    Parameters
    ----------
    adata
        Genome matrix with a reduction in ``obsm[use_rep]``.
    k
        Number of nearest neighbours.
    use_rep
        Reduction used to find neighbours.
    method
        'leiden' (leidenalg, RBConfiguration) or 'louvain' (igraph multilevel).
    resolution
        Higher values lead to more clusters.
    n_iterations
        Leiden iterations, -1 runs until the partition is stable.
    random_state
        Change the initialization of the optimization.
    key_added
        `adata.obs` key under which to add the cluster labels.
    inplace
        Whether to store the result in the anndata object.

    Returns
    -------
    pd.Categorical | None
        Labels ``'1'``, ``'2'``, ... ordered by decreasing cluster size. If
        `inplace=True`, stored in ``adata.obs[key_added]``.
    """
    check_anndata(adata)
    check_obsm_key(adata, use_rep, "Please run run_irlba first!")
    check_positive(k=k, resolution=resolution)
    check_in(['leiden', 'louvain'], method=method)

    X = np.asarray(adata.obsm[use_rep], dtype=float)
    gr = get_igraph_from_adjacency(jaccard_graph(X, k))
    if method == "leiden":
        import leidenalg
        partition = leidenalg.find_partition(
            gr, leidenalg.RBConfigurationVertexPartition, weights="weight",
            resolution_parameter=resolution, n_iterations=n_iterations, seed=random_state,
        )
    else:
        import random
        from igraph import set_random_number_generator
        random.seed(random_state)
        set_random_number_generator(random)
        partition = gr.community_multilevel(weights="weight", resolution=resolution)
    labels = _relabel_by_size(partition.membership)
    logg.info(f"...{len(labels.categories)} clusters found with {method} (k={k}, resolution={resolution})")
    if inplace:
        adata.obs[key_added] = labels
        return None
    return labels


def get_n_clusters(adata, n_cluster, range_min=0, range_max=3, max_steps=20, **kwargs):
    """
    Bisect the resolution until `run_cluster` returns `n_cluster` clusters.

    Returns the resolution; the labels of the last run stay in ``adata.obs``.
    """
    this_step = 0
    this_min = float(range_min)
    this_max = float(range_max)
    key_added = kwargs.setdefault("key_added", "cluster_id")
    this_resolution = this_clusters = None
    while this_step < max_steps:
        this_resolution = this_min + ((this_max - this_min) / 2)
        run_cluster(adata, resolution=this_resolution, **kwargs)
        this_clusters = adata.obs[key_added].nunique()
        logg.hint(f"step {this_step}: got {this_clusters} clusters at resolution {this_resolution}")
        if this_clusters > n_cluster:
            this_max = this_resolution
        elif this_clusters < n_cluster:
            this_min = this_resolution
        else:
            return this_resolution
        this_step += 1

    logg.warn(f"Cannot find {n_cluster} clusters; the last iteration gave {this_clusters} "
              f"at resolution {this_resolution}")
    return this_resolution
