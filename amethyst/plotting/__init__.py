#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
plots of cells, groups and regions

"""
from ._scatter import dim_feature, dim_m
from ._palette import palette, ditto_palette, zeileis_palette, get_colors
from .heatmap import marker_heatmap
from .tracks import histogram
from .basic import grouped_value_boxplot, stacked_plot, qc_hist, volcano, go_barplot
from .._utils import set_figure_params
