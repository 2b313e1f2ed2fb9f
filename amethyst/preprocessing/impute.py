#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
diffusion based imputation of sparse methylation matrices

"""
import numpy as np
from scipy import sparse
from sklearn.decomposition import PCA
from sklearn.neighbors import NearestNeighbors

from .. import logging as logg
from .._check import check_anndata, check_positive, check_int
from .filter import fill_na


def _diffusion_operator(X, knn=5, decay=1, n_pcs=20, random_state=0):
    n = X.shape[0]
    n_pcs = min(n_pcs, n - 1, X.shape[1])
    if 0 < n_pcs < X.shape[1]:
        X = PCA(n_components=n_pcs, random_state=random_state).fit_transform(X)
    k = min(knn + 1, n)
    dist, ind = NearestNeighbors(n_neighbors=k).fit(X).kneighbors(X)
    # adaptive bandwidth: distance to the knn-th neighbour
    sigma = dist[:, -1].copy()
    sigma[sigma == 0] = 1.0
    weights = np.exp(-np.power(dist / sigma[:, None], decay))
    rows = np.repeat(np.arange(n), k)
    K = sparse.csr_matrix((weights.ravel(), (rows, ind.ravel())), shape=(n, n))
    K = (K + K.T) / 2
    row_sums = np.asarray(K.sum(axis=1)).ravel()
    return sparse.diags(1 / row_sums) @ K


def impute(adata, knn=5, t=3, decay=1, n_pcs=20, layer=None, replace_na="mean", key_added="imputed",
           random_state=0):
    """
    Impute a genome matrix by diffusion over a cell kNN graph (MAGIC).

    Missing values are first filled with the feature mean, cells are embedded
    with PCA and connected to their `knn` nearest neighbours with an adaptive
    kernel ``exp(-(d / sigma) ** decay)``. The symmetrised, row-normalised
    kernel is applied `t` times, so every imputed row is a weighted average of
    observed cells.

    Parameters
    ----------
    adata
        Genome matrix.
    knn
        Number of neighbours; the distance to the last one sets each cell's bandwidth.
    t
        Diffusion time.
    decay
        Kernel decay exponent.
    n_pcs
        Principal components used to find neighbours.
    layer
        Layer to impute instead of ``X``.
    key_added
        Layer receiving the result.

    Returns
    -------
    np.ndarray
        The imputed matrix, also stored as ``adata.layers[key_added]``.
    """
    check_anndata(adata)
    check_positive(knn=knn, decay=decay)
    check_int(knn=knn, t=t)
    if t < 0:
        raise ValueError(f"Expected t >= 0, got {t}")
    X = adata.X if layer is None else adata.layers[layer]
    data = fill_na(X, replace_na)
    logg.info(f"...imputing {data.shape[0]} cells x {data.shape[1]} features (knn={knn}, t={t})", reset=True)
    P = _diffusion_operator(data, knn=knn, decay=decay, n_pcs=n_pcs, random_state=random_state)
    imputed = data
    for _ in range(t):
        imputed = P @ imputed
    adata.layers[key_added] = np.asarray(imputed, dtype=np.float32)
    logg.info(f"...stored as adata.layers['{key_added}']", time=True)
    return adata.layers[key_added]
