#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
colour palettes

"""
import pandas as pd
import seaborn as sns
from matplotlib import colors as mcolors

# dittoSeq colours
DITTO = [
    "#E69F00", "#56B4E9", "#009E73", "#F0E442", "#0072B2", "#D55E00", "#CC79A7", "#666666",
    "#AD7700", "#1C91D4", "#007756", "#D5C711", "#005685", "#A04700", "#B14380", "#4D4D4D",
    "#FFBE2D", "#80C7EF", "#00F6B3", "#F4EB71", "#06A5FF", "#FF8320", "#D99BBD", "#8C8C8C",
    "#FFCB57", "#9AD2F2", "#2CFFC6", "#F6EF8E", "#38B7FF", "#FF9B4D", "#E0AFCA", "#A3A3A3",
    "#8A5F00", "#1674A9", "#005F45", "#AA9F0D", "#00446B", "#803800", "#8D3666", "#3D3D3D",
]

# Zeileis et al. (2019), 28 colours used by scanpy
ZEILEIS = [
    "#023fa5", "#7d87b9", "#bec1d4", "#d6bcc0", "#bb7784", "#8e063b", "#4a6fe3", "#8595e1",
    "#b5bbe3", "#e6afb9", "#e07b91", "#d33f6a", "#11c638", "#8dd593", "#c6dec7", "#ead3c6",
    "#f0b98d", "#ef9708", "#0fcfc0", "#9cded6", "#d5eae7", "#f3e1eb", "#f6c4e1", "#f79cd4",
    "#7f7f7f", "#c7c7c7", "#1CE6FF", "#336600",
]

# blue - white - red for methylation levels
METHYLATION_CMAP = mcolors.LinearSegmentedColormap.from_list("methylation", ["#2c3e91", "#f7f7f7", "#b2182b"])


def ditto_palette(n=None):
    return DITTO if n is None else [DITTO[i % len(DITTO)] for i in range(n)]


def zeileis_palette(n=None):
    return ZEILEIS if n is None else [ZEILEIS[i % len(ZEILEIS)] for i in range(n)]


def palette(n):
    """Default categorical palette: dittoSeq colours, husl beyond 40 categories."""
    if n <= len(DITTO):
        return ditto_palette(n)
    return [mcolors.to_hex(c) for c in sns.color_palette("husl", n)]


def get_colors(adata, key, colors=None):
    """
    Colours of the categories of ``obs[key]``, kept in ``uns[f'{key}_colors']``.

    A list or dict passed as `colors` replaces the stored colours.
    """
    values = adata.obs[key]
    if isinstance(values.dtype, pd.CategoricalDtype):
        categories = list(values.cat.categories)
    else:
        categories = sorted(values.dropna().unique(), key=str)
    if isinstance(colors, dict):
        colors = [colors.get(c, "#bfbfbf") for c in categories]
    elif colors is None:
        stored = adata.uns.get(f"{key}_colors")
        colors = list(stored) if stored is not None and len(stored) >= len(categories) else palette(len(categories))
    else:
        colors = [colors[i % len(colors)] for i in range(len(categories))]
    adata.uns[f"{key}_colors"] = list(colors[:len(categories)])
    return dict(zip(categories, colors))
