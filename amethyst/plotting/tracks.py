#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
methylation tracks over genes

"""
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle

from .._utils import savefig
from ..preprocessing._reference import get_gene_model
from ._palette import palette


def _draw_gene_model(ax, model, start, end):
    gene = model[model["type"] == "gene"]
    exons = model[model["type"] == "exon"]
    for _, row in gene.iterrows():
        ax.plot([max(row["start"], start), min(row["end"], end)], [0.5, 0.5], color="black", lw=1)
        arrow = ">" if row["strand"] == "+" else "<"
        ax.text(0.01, 0.95, f"{row['gene_name']} ({arrow})", transform=ax.transAxes, va="top", fontsize=9)
    for _, row in exons.drop_duplicates(["start", "end"]).iterrows():
        ax.add_patch(Rectangle((row["start"], 0.3), row["end"] - row["start"], 0.4, color="black", lw=0))
    ax.set_ylim(0, 1)
    ax.set_yticks([])
    for side in ("top", "right", "left"):
        ax.spines[side].set_visible(False)


def histogram(smoothed,
              gene,
              ref,
              groups=None,
              flank=5000,
              colors=None,
              ylim=(0, 100),
              figsize=None,
              show=None,
              save=None):
    """
    Group methylation over a gene as stacked bar tracks, with the gene model below.

    Args:
        smoothed (dict or pd.DataFrame): `calc_smoothed_windows` output or its ``pct_matrix``.
        gene (str): gene name in `ref`.
        ref (pd.DataFrame): annotation from `make_ref`.
        groups (list): groups to draw, in order. Defaults to all.
        flank (int): bp shown on both sides of the gene.
        colors (list): one colour per group.
        ylim (tuple): y range of every track.

    ---------
    histogram(smoothed, "SATB2", ref, groups=["1", "3"], flank=10000)
    """
    pct = smoothed["pct_matrix"] if isinstance(smoothed, dict) else smoothed
    model = get_gene_model(ref, gene)
    body = model[model["type"] == "gene"].iloc[0] if (model["type"] == "gene").any() else model.iloc[0]
    chrom = body["seqid"]
    start, end = int(model["start"].min()) - flank, int(model["end"].max()) + flank
    groups = [c for c in pct.columns if c not in ("chr", "start", "end")] if groups is None else list(groups)
    missing = [g for g in groups if g not in pct.columns]
    if missing:
        raise KeyError(f"groups {missing} not found in the pct matrix")
    colors = palette(len(groups)) if colors is None else colors
    region = pct[(pct["chr"] == chrom) & (pct["end"] > start) & (pct["start"] < end)]

    n = len(groups)
    figsize = figsize or (8, 0.9 * n + 1.2)
    fig, axes = plt.subplots(n + 1, 1, figsize=figsize, sharex=True,
                             gridspec_kw={"height_ratios": [1] * n + [0.8]}, squeeze=False)
    axes = axes.ravel()
    widths = (region["end"] - region["start"]).to_numpy()
    for g, col, ax in zip(groups, colors, axes[:n]):
        values = region[g].to_numpy(dtype=float)
        ok = ~np.isnan(values)
        ax.bar(region["start"].to_numpy()[ok], values[ok], width=widths[ok], align="edge", color=col, lw=0)
        ax.set_ylim(*ylim)
        ax.set_ylabel(g, rotation=0, ha="right", va="center")
        ax.set_yticks([])
        for side in ("top", "right"):
            ax.spines[side].set_visible(False)
    _draw_gene_model(axes[-1], model, start, end)
    axes[-1].set_xlim(start, end)
    axes[-1].set_xlabel(f"{chrom} position (bp)")
    fig.subplots_adjust(hspace=0.1)
    savefig(f"histogram_{gene}", save=save, show=show)
    if show is False:
        return axes
