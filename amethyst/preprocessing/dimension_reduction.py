import logging
from typing import Callable, Union

import numpy as np
import scanpy as sc
from sklearn.decomposition import TruncatedSVD
from sklearn.linear_model import LinearRegression
from openTSNE import TSNEEmbedding, affinity, initialization

from .. import logging as logg
from .._check import check_anndata, check_obsm_key, check_obs_key, check_positive
from .._utils import find_elbow
from .filter import fill_na


def _stack_matrices(adatas, replace_na=0, use_features=None):
    """Concatenate genome matrices feature-wise on the cells of the first one."""
    if not isinstance(adatas, (list, tuple)):
        adatas = [adatas]
    for a in adatas:
        check_anndata(a)
    if not isinstance(replace_na, (list, tuple)):
        replace_na = [replace_na] * len(adatas)
    if len(replace_na) != len(adatas):
        raise ValueError("replace_na needs one value per matrix.")
    cells = adatas[0].obs_names
    blocks = []
    for a, na in zip(adatas, replace_na):
        missing = cells.difference(a.obs_names)
        if len(missing):
            raise ValueError(f"{len(missing)} cells of the first matrix are missing from another matrix.")
        sub = a[cells]
        if use_features is not None:
            if use_features not in sub.var.columns:
                raise KeyError(f'{use_features} not in adata.var. Please run select_features() first!')
            sub = sub[:, sub.var[use_features].to_numpy(dtype=bool)]
        blocks.append(fill_na(sub.X, na))
    return adatas[0], np.hstack(blocks)


def run_irlba(adatas, dims=10, replace_na=0, use_features=None, key_added="X_irlba",
              algorithm="arpack", random_state=1234):
    """
    Truncated SVD of one or more genome matrices.

    Parameters:
    -----------
    adatas: AnnData or list of AnnData
        Genome matrices sharing cells; features are concatenated. Results are
        stored on the first matrix.
    dims: `int`, optional (default: 10)
        Number of singular vectors.
    replace_na: value, "mean" or list, optional (default: 0)
        Fill value for NaN, one per matrix if a list.
    use_features: `str`, optional (default: None)
        Boolean ``var`` column restricting the features, e.g. "feature_select".
    key_added: `str`, optional (default: "X_irlba")
        ``obsm`` key of the embedding ``U * S``.

    Returns
    -------
    np.ndarray
        cells x dims embedding.
    """
    check_positive(dims=dims)
    adata, X = _stack_matrices(adatas, replace_na, use_features)
    if dims >= min(X.shape):
        raise ValueError(f"dims must be smaller than min(n_cells, n_features) = {min(X.shape)}")
    logg.info(f"...truncated SVD on {X.shape[0]} cells x {X.shape[1]} features", reset=True)
    model = TruncatedSVD(n_components=dims, algorithm=algorithm, random_state=random_state)
    embedding = model.fit_transform(X)
    adata.obsm[key_added] = embedding
    adata.uns[key_added + "_params"] = {
        "dims": int(dims),
        "singular_values": model.singular_values_,
        "variance_ratio": model.explained_variance_ratio_,
    }
    logg.info(f"...embedding stored as adata.obsm['{key_added}']", time=True)
    return embedding


def dim_estimate(adatas, dims=50, threshold=0.98, replace_na=0, use_features=None, method="threshold"):
    """
    Estimate how many SVD components to keep.

    With ``method="threshold"`` this is the smallest number of components whose
    cumulative share of the squared singular values (among the first `dims`)
    reaches `threshold`; ``method="elbow"`` returns the elbow of the singular
    value curve.
    """
    _, X = _stack_matrices(adatas, replace_na, use_features)
    dims = min(dims, min(X.shape) - 1)
    model = TruncatedSVD(n_components=dims, algorithm="arpack", random_state=1234).fit(X)
    sv = model.singular_values_
    if method == "elbow":
        elbow = find_elbow(sv)
        return dims if elbow is None else int(elbow)
    share = np.cumsum(sv ** 2) / np.sum(sv ** 2)
    return int(min(np.searchsorted(share, threshold) + 1, dims))


def regress_cov_bias(adata, use_rep="X_irlba", cov_key="cov", key_added=None):
    """
    Remove the coverage dependence of each component.

    Each column of ``obsm[use_rep]`` is replaced by the residuals of a linear
    fit on log coverage. Stored as ``obsm[use_rep + '_regressed']``.
    """
    check_anndata(adata)
    check_obsm_key(adata, use_rep, "Please run run_irlba first!")
    check_obs_key(adata, cov_key, "Please run add_cell_info or cell_stats first!")
    key_added = key_added or f"{use_rep}_regressed"
    emb = np.asarray(adata.obsm[use_rep], dtype=float)
    cov = adata.obs[cov_key].to_numpy(dtype=float)
    if np.any(~np.isfinite(cov)) or np.any(cov <= 0):
        raise ValueError(f"obs['{cov_key}'] must be positive and finite for every cell.")
    x = np.log(cov).reshape(-1, 1)
    model = LinearRegression().fit(x, emb)
    adata.obsm[key_added] = emb - model.predict(x)
    return adata.obsm[key_added]


def run_umap(adata, use_rep="X_irlba_regressed", n_neighbors=30, min_dist=0.05, metric="euclidean",
             random_state=0, key_added="X_umap"):
    """UMAP of a reduction through scanpy; the neighbor graph is kept under ``uns['umap_neighbors']``."""
    check_anndata(adata)
    check_obsm_key(adata, use_rep, "Please run run_irlba first!")
    sc.pp.neighbors(adata, n_neighbors=n_neighbors, use_rep=use_rep, metric=metric,
                    random_state=random_state, key_added="umap_neighbors")
    sc.tl.umap(adata, min_dist=min_dist, random_state=random_state, neighbors_key="umap_neighbors")
    if key_added != "X_umap":
        adata.obsm[key_added] = adata.obsm.pop("X_umap")
    return adata.obsm[key_added]


def run_tsne(adata, use_rep='X_irlba_regressed',
             metric: Union[str, Callable] = "euclidean",
             exaggeration: float = -1,
             perplexity: int = 30,
             n_jobs: int = -1,
             key_added='X_tsne'):
    check_anndata(adata)
    check_obsm_key(adata, use_rep, "Please run run_irlba first!")
    X = np.asarray(adata.obsm[use_rep], dtype=float)
    Z = tsne_method(X=X, metric=metric, exaggeration=exaggeration, perplexity=perplexity, n_jobs=n_jobs)
    adata.obsm[key_added] = np.asarray(Z)
    return adata.obsm[key_added]


def tsne_method(X: np.ndarray,
                metric: Union[str, Callable] = "euclidean",
                exaggeration: float = -1,
                perplexity: int = 30,
                n_jobs: int = -1) -> TSNEEmbedding:
    """
    Implementation of Dmitry Kobak and Philipp Berens
    "The art of using t-SNE for single-cell transcriptomics" based on openTSNE.
    See https://doi.org/10.1038/s41467-019-13056-x | www.nature.com/naturecommunications
    Args:
        X				The data matrix of shape (n_cells, n_features)
        metric			Any metric allowed by PyNNDescent (default: 'euclidean')
        exaggeration	The exaggeration to use for the embedding
        perplexity		The perplexity to use for the embedding

    Returns:
        The embedding as an opentsne.TSNEEmbedding object (which can be cast to an np.ndarray)
    """
    n = X.shape[0]
    # perplexity must stay below the number of neighbours available
    perplexity = min(perplexity, max(1, (n - 1) // 3))
    if n > 100_000:
        if exaggeration == -1:
            exaggeration = 1 + n / 333_333
        # Subsample, optimize, then add the remaining cells and optimize again
        logging.info(f"Creating subset of {n // 40} elements")
        indices = np.random.permutation(n)
        reverse = np.argsort(indices)
        X_sample, X_rest = X[indices[:n // 40]], X[indices[n // 40:]]
        logging.info("Embedding subset")
        Z_sample = tsne_method(X_sample, metric=metric, n_jobs=n_jobs)

        logging.info(
            f"Preparing partial initial embedding of the {n - n // 40} remaining elements"
        )
        if isinstance(Z_sample.affinities, affinity.Multiscale):
            rest_init = Z_sample.prepare_partial(X_rest, k=1, perplexities=[1 / 3, 1 / 3])
        else:
            rest_init = Z_sample.prepare_partial(X_rest, k=1, perplexity=1 / 3)
        init_full = np.vstack((Z_sample, rest_init))[reverse]
        init_full = init_full / (np.std(init_full[:, 0]) * 10000)

        affinities = affinity.PerplexityBasedNN(X, perplexity=perplexity, metric=metric,
                                                method="approx", n_jobs=n_jobs)
        Z = TSNEEmbedding(init_full, affinities, negative_gradient_method="fft", n_jobs=n_jobs)
        Z.optimize(n_iter=250, inplace=True, exaggeration=12, momentum=0.5,
                   learning_rate=n / 12, n_jobs=n_jobs)
        Z.optimize(n_iter=750, inplace=True, exaggeration=exaggeration, momentum=0.8,
                   learning_rate=n / 12, n_jobs=n_jobs)
    elif n > 3_000:
        if exaggeration == -1:
            exaggeration = 1
        # Use multiscale perplexity
        affinities_multiscale_mixture = affinity.Multiscale(
            X, perplexities=[perplexity, n / 100], metric=metric, method="approx", n_jobs=n_jobs)
        init = initialization.pca(X)
        Z = TSNEEmbedding(init, affinities_multiscale_mixture, negative_gradient_method="fft", n_jobs=n_jobs)
        Z.optimize(n_iter=250, inplace=True, exaggeration=12, momentum=0.5,
                   learning_rate=n / 12, n_jobs=n_jobs)
        Z.optimize(n_iter=750, inplace=True, exaggeration=exaggeration, momentum=0.8,
                   learning_rate=n / 12, n_jobs=n_jobs)
    else:
        if exaggeration == -1:
            exaggeration = 1
        # Just a plain TSNE with high learning rate
        lr = max(200, n / 12)
        aff = affinity.PerplexityBasedNN(X, perplexity=perplexity, metric=metric,
                                         method="exact" if n < 200 else "approx", n_jobs=n_jobs)
        init = initialization.pca(X)
        Z = TSNEEmbedding(init, aff, learning_rate=lr, n_jobs=n_jobs, negative_gradient_method="fft")
        Z.optimize(250, exaggeration=12, momentum=0.5, inplace=True, n_jobs=n_jobs)
        Z.optimize(750, exaggeration=exaggeration, momentum=0.8, inplace=True, n_jobs=n_jobs)
    return Z
