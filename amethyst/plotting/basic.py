import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

from .._utils import savefig
from ._palette import get_colors


def grouped_value_boxplot(adata, color_by, value_column, colors=None, figsize=(10, 6), ax=None,
                          show=None, save=None):
    """
    Boxplot of an ``obs`` value per group, with the median written on each box.

    Args:
    adata (AnnData): object with ``obs[color_by]`` and ``obs[value_column]``
    color_by (str): column used for grouping
    value_column (str): numeric column to plot, e.g. "mcg_pct"
    colors (list): colours of the groups
    """
    lut = get_colors(adata, color_by, colors)
    order = list(lut)
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(x=color_by, y=value_column, data=adata.obs, order=order, hue=color_by, hue_order=order,
                palette=lut, legend=False, ax=ax)

    medians = adata.obs.groupby(color_by, observed=True)[value_column].median().reindex(order)
    for xtick, median in zip(ax.get_xticks(), medians):
        if not np.isnan(median):
            ax.text(xtick, median, f'{median:.2f}', ha='center', va='bottom', color='k', fontsize=10)

    ax.set_title(f'{value_column} by {color_by}')
    ax.set_xlabel(color_by)
    ax.set_ylabel(value_column)
    savefig("boxplot", save=save, show=show)
    if show is False:
        return ax


def stacked_plot(adata,
                 groupby,
                 colorby,
                 orientation='vertical',
                 normalize=False,
                 ax=None,
                 color=None,
                 figsize=(10, 6),
                 show=None,
                 save=None):
    """
    generate a stacked bar plot of groupby by colorby

    Args:
    adata (AnnData): Annotated data matrix
    groupby (str): The column name of the data matrix to group by
    colorby (str): The column name of the data matrix to color by
    orientation (str): The orientation of the plot, either 'vertical' or 'horizontal'
    normalize (bool): Show proportions instead of counts
    ax (matplotlib.axes.Axes): The axes to plot on
    color (list): The color palette to use for the plot
    figsize (tuple): The size of the figure
    show (bool): Whether to show the plot
    save (str): png pdf or svg file to save the plot,default None

    ---------
    stacked_plot(adata, groupby='cluster_id', colorby='batch', orientation='horizontal')

    """
    lut = get_colors(adata, colorby, color)
    pivot_table = adata.obs.pivot_table(index=groupby, columns=colorby, aggfunc='size', fill_value=0, observed=False)
    if normalize:
        pivot_table = pivot_table.div(pivot_table.sum(axis=1).replace(0, np.nan), axis=0)
    colors = [lut.get(c, "#bfbfbf") for c in pivot_table.columns]

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)

    label = 'Proportion' if normalize else 'Counts'
    if orientation == 'horizontal':
        pivot_table.plot(kind='barh', stacked=True, color=colors, ax=ax)
        ax.set_xlabel(label)
        ax.set_ylabel(groupby)
    else:
        pivot_table.plot(kind='bar', stacked=True, color=colors, ax=ax)
        ax.set_xlabel(groupby)
        ax.set_ylabel(label)

    ax.set_title(f'{groupby} by {colorby}')
    ax.legend(title=colorby, loc="center left", bbox_to_anchor=(1, 0.5), frameon=False)
    ax.yaxis.tick_left()
    ax.xaxis.tick_bottom()
    savefig("stacked", save=save, show=show)
    if show is False:
        return ax


def qc_hist(adata, keys=("cov", "mcg_pct"), bins=50, thresholds=None, figsize=None, show=None, save=None):
    """
    Histograms of per-cell QC values, with optional filter thresholds as dashed lines.

    `thresholds` maps a key to one value or a (low, high) pair.
    """
    keys = [keys] if isinstance(keys, str) else list(keys)
    thresholds = thresholds or {}
    figsize = figsize or (4 * len(keys), 3.5)
    fig, axes = plt.subplots(1, len(keys), figsize=figsize, squeeze=False)
    for key, ax in zip(keys, axes.ravel()):
        if key not in adata.obs.columns:
            raise KeyError(f"'{key}' is not present in adata.obs")
        ax.hist(adata.obs[key].dropna().to_numpy(dtype=float), bins=bins, color="#56B4E9")
        lines = thresholds.get(key, ())
        for x in np.atleast_1d(lines):
            if x is not None:
                ax.axvline(x=x, color='r', linestyle='--')
        ax.set_xlabel(key)
        ax.set_ylabel("cell count")
    fig.tight_layout()
    savefig("qc_hist", save=save, show=show)
    if show is False:
        return axes.ravel()


def volcano(results_df, log2_fc_col='logFC', pval_col='p_adj', label_col='gene', alpha=0.05,
            lfc_threshold=1.0, n_labels=10, figsize=(8, 6), ax=None, show=None, save=None):
    """
    Volcano plot of marker or DMR results.

    Parameters:
    results_df (pd.DataFrame): `find_cluster_markers` or `filter_dmr` output.
    log2_fc_col (str): Column name for log2 fold change.
    pval_col (str): Column name for p-value.
    label_col (str): Column labelling the top features, None for no labels.
    alpha (float): Significance threshold for p-value.
    lfc_threshold (float): Threshold for log2 fold change.
    """
    df = results_df.copy()
    df[pval_col] = pd.to_numeric(df[pval_col], errors='coerce')
    df['-log10_pvalue'] = -np.log10(df[pval_col].clip(lower=np.finfo(float).tiny))
    significant = (df[pval_col] < alpha) & (np.abs(df[log2_fc_col]) > lfc_threshold)
    df['regulation'] = np.where(~significant, 'nonsignificant',
                                np.where(df[log2_fc_col] > 0, 'hypermethylated', 'hypomethylated'))

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    sns.scatterplot(x=log2_fc_col, y='-log10_pvalue', data=df, hue='regulation', ax=ax,
                    palette={'hypermethylated': '#b2182b', 'hypomethylated': '#2c3e91', 'nonsignificant': 'gray'},
                    alpha=0.6, linewidth=0)
    ax.axhline(-np.log10(alpha), ls='--', color='black', lw=0.5)
    ax.axvline(lfc_threshold, ls='--', color='black', lw=0.5)
    ax.axvline(-lfc_threshold, ls='--', color='black', lw=0.5)
    ax.set_xlabel('Log2 Fold Change')
    ax.set_ylabel(f'-Log10 {pval_col}')

    if label_col is not None and label_col in df.columns:
        top = df[significant].nsmallest(n_labels, pval_col)
        for name, x, y in top[[label_col, log2_fc_col, '-log10_pvalue']].itertuples(index=False):
            ax.annotate(str(name)[:15], (x, y), fontsize=8)
    savefig("volcano", save=save, show=show)
    if show is False:
        return ax


def go_barplot(go_results, n_terms=10, pval_col='p_val', color="#0072B2", figsize=(6, 4), ax=None,
               show=None, save=None):
    """Horizontal bars of -log10 p for the top GO terms of `go_enrichment`."""
    top = go_results.nsmallest(n_terms, pval_col).iloc[::-1]
    labels = [t if t else go for go, t in zip(top["GO_ID"], top["term"])]
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    ax.barh(labels, -np.log10(top[pval_col].clip(lower=np.finfo(float).tiny)), color=color)
    for y, (sig, ann) in enumerate(zip(top["significant"], top["annotated"])):
        ax.text(0, y, f" {sig}/{ann}", va="center", fontsize=8, color="white")
    ax.set_xlabel(f'-Log10 {pval_col}')
    for side in ("top", "right"):
        ax.spines[side].set_visible(False)
    savefig("go_barplot", save=save, show=show)
    if show is False:
        return ax
