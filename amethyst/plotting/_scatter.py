#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
embedding scatter plots

"""
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from .._check import check_anndata
from .._utils import savefig, to_dense
from ._palette import get_colors, METHYLATION_CMAP


def _basis(adata, basis):
    key = basis if basis in adata.obsm else f"X_{basis}"
    if key not in adata.obsm:
        raise KeyError(f"'{key}' is not present in adata.obsm. Please run run_umap or run_tsne first!")
    return np.asarray(adata.obsm[key])[:, :2], basis.replace("X_", "").upper()


def _default_size(n):
    return 120000 / max(n, 1) if n > 2000 else 20


def _axes_grid(n, ncols, panel=(4, 4)):
    ncols = min(ncols, n)
    nrows = int(np.ceil(n / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(panel[0] * ncols, panel[1] * nrows), squeeze=False)
    for ax in axes.ravel()[n:]:
        ax.axis("off")
    return fig, axes.ravel()[:n]


def _clean(ax, label):
    ax.set_xticks([])
    ax.set_yticks([])
    ax.set_xlabel(f"{label}1")
    ax.set_ylabel(f"{label}2")
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)


def dim_feature(adata,
                color="cluster_id",
                basis="umap",
                colors=None,
                size=None,
                cmap="viridis",
                label_on_data=False,
                ncols=3,
                ax=None,
                show=None,
                save=None):
    """
    Embedding coloured by ``obs`` columns.

    Args:
        adata (AnnData): object with ``obsm['X_' + basis]``.
        color (str or list): ``obs`` column(s); categorical columns get the
            colours stored in ``uns[f'{color}_colors']``.
        basis (str): "umap", "tsne" or any ``obsm`` key.
        colors (list or dict): colours of the categories.
        size (float): marker size, scaled to the number of cells by default.
        label_on_data (bool): write category names at their median position.
        show (bool): whether to show the plot.
        save (str): file to save the plot, default None.

    ---------
    dim_feature(gene_ch, color=["cluster_id", "batch"], basis="umap")
    """
    check_anndata(adata)
    keys = [color] if isinstance(color, str) else list(color)
    coords, label = _basis(adata, basis)
    size = size or _default_size(adata.n_obs)
    if ax is None:
        fig, axes = _axes_grid(len(keys), ncols)
    else:
        if len(keys) > 1:
            raise ValueError("Pass a single color when plotting into an existing ax.")
        fig, axes = ax.get_figure(), [ax]

    for key, ax in zip(keys, axes):
        if key not in adata.obs.columns:
            raise KeyError(f"'{key}' is not present in adata.obs")
        values = adata.obs[key]
        if isinstance(values.dtype, pd.CategoricalDtype) or values.dtype == object:
            lut = get_colors(adata, key, colors)
            for cat, col in lut.items():
                mask = (values == cat).to_numpy()
                ax.scatter(coords[mask, 0], coords[mask, 1], s=size, c=col, label=str(cat),
                           linewidths=0, rasterized=True)
                if label_on_data and mask.any():
                    x, y = np.median(coords[mask], axis=0)
                    ax.text(x, y, str(cat), ha="center", va="center", fontsize=9, weight="bold")
            if not label_on_data:
                ax.legend(loc="center left", bbox_to_anchor=(1, 0.5), frameon=False, markerscale=2,
                          fontsize=8)
        else:
            order = np.argsort(values.to_numpy(dtype=float))
            sc_ = ax.scatter(coords[order, 0], coords[order, 1], s=size, c=values.to_numpy(dtype=float)[order],
                             cmap=cmap, linewidths=0, rasterized=True)
            fig.colorbar(sc_, ax=ax, shrink=0.6)
        ax.set_title(key)
        _clean(ax, label)
    savefig(f"{basis}_feature", save=save, show=show)
    if show is False:
        return axes


def dim_m(adata,
          genes,
          basis="umap",
          layer=None,
          matrix=None,
          cmap=METHYLATION_CMAP,
          vmin=None,
          vmax=None,
          size=None,
          ncols=3,
          show=None,
          save=None):
    """
    Embedding coloured by the methylation level of features (e.g. genes).

    Cells without a value are drawn in grey underneath.

    Args:
        adata (AnnData): object with the embedding.
        genes (str or list): features of `matrix` (or `adata`) to plot.
        basis (str): embedding to use.
        layer (str): layer of `matrix`, e.g. "imputed".
        matrix (AnnData): genome matrix holding the values, defaults to `adata`.
        vmin, vmax (float): colour range; per feature 1st and 99th percentile by default.

    ---------
    dim_m(w100k, ["SATB2", "GAD1"], matrix=gene_ch, layer="imputed")
    """
    check_anndata(adata)
    matrix = adata if matrix is None else matrix
    genes = [genes] if isinstance(genes, str) else list(genes)
    missing = [g for g in genes if g not in matrix.var_names]
    if missing:
        raise KeyError(f"{missing} not present in the matrix features")
    coords, label = _basis(adata, basis)
    size = size or _default_size(adata.n_obs)
    sub = matrix[adata.obs_names, genes]
    values = to_dense(sub.X if layer is None else sub.layers[layer]).astype(float)

    fig, axes = _axes_grid(len(genes), ncols)
    for j, (gene, ax) in enumerate(zip(genes, axes)):
        v = values[:, j]
        observed = ~np.isnan(v)
        ax.scatter(coords[~observed, 0], coords[~observed, 1], s=size, c="#d9d9d9", linewidths=0, rasterized=True)
        lo = np.nanpercentile(v, 1) if vmin is None and observed.any() else vmin
        hi = np.nanpercentile(v, 99) if vmax is None and observed.any() else vmax
        order = np.argsort(v[observed])
        xy = coords[observed][order]
        sc_ = ax.scatter(xy[:, 0], xy[:, 1], s=size, c=v[observed][order], cmap=cmap, vmin=lo, vmax=hi,
                         linewidths=0, rasterized=True)
        fig.colorbar(sc_, ax=ax, shrink=0.6)
        ax.set_title(gene)
        _clean(ax, label)
    savefig(f"{basis}_methylation", save=save, show=show)
    if show is False:
        return axes
