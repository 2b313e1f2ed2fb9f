#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
heatmaps of group methylation

"""
import seaborn as sns
import matplotlib.pyplot as plt

from .._utils import savefig
from ..get import top_markers
from ..tools.markers import aggregate_matrix
from ._palette import get_colors, METHYLATION_CMAP


def marker_heatmap(adata,
                   genes=None,
                   markers=None,
                   n_genes=5,
                   group_by="cluster_id",
                   layer=None,
                   standard_scale=None,
                   cluster_rows=False,
                   cluster_cols=False,
                   cmap=METHYLATION_CMAP,
                   figsize=None,
                   show=None,
                   save=None):
    """
    Mean methylation of genes per group as a clustermap.

    Args:
        adata (AnnData): genome matrix with ``obs[group_by]``.
        genes (list): features to show. Defaults to the `n_genes` top hypomethylated
            markers per group from `markers`, or ``uns['cluster_markers']``.
        standard_scale (int): 0 scales each feature, 1 each group, as in seaborn.
        cluster_rows, cluster_cols (bool): cluster features / groups.

    ---------
    marker_heatmap(gene_ch, n_genes=3, layer="imputed", standard_scale=0)
    """
    if genes is None:
        if markers is None:
            if "cluster_markers" not in adata.uns:
                raise KeyError("No genes given and no markers found. Please run find_cluster_markers first!")
            markers = adata.uns["cluster_markers"]
        genes = list(dict.fromkeys(top_markers(markers, n_genes, direction="hypomethylated")["gene"]))
    genes = [g for g in genes if g in adata.var_names]
    if not genes:
        raise ValueError("None of the genes is present in adata.var_names")
    means = aggregate_matrix(adata[:, genes], group_by=group_by, layer=layer)
    lut = get_colors(adata, group_by)
    lut = {str(k): v for k, v in lut.items()}
    col_colors = [lut.get(str(g), "#bfbfbf") for g in means.columns]
    if cluster_rows or cluster_cols:
        # linkage needs finite values
        means = means.T.fillna(means.mean(axis=1)).T.fillna(0)
    figsize = figsize or (max(4, 0.5 * means.shape[1] + 2), max(4, 0.25 * means.shape[0] + 2))
    grid = sns.clustermap(means,
                          row_cluster=cluster_rows, col_cluster=cluster_cols, standard_scale=standard_scale,
                          cmap=cmap, col_colors=col_colors, figsize=figsize,
                          cbar_kws={"label": "scaled" if standard_scale is not None else "methylation"})
    grid.ax_heatmap.set_xlabel(group_by)
    grid.ax_heatmap.set_ylabel("")
    plt.setp(grid.ax_heatmap.get_yticklabels(), rotation=0)
    savefig("marker_heatmap", save=save, show=show)
    if show is False:
        return grid
