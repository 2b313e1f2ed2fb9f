#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
shared helpers: files, figures and graphs

"""
import os

import numpy as np
import pandas as pd
import seaborn as sns
import matplotlib.pyplot as plt
from matplotlib import rcParams
from scipy import sparse

from ._settings import settings
from . import logging as logg


def make_dir(dirname):
    """Create directory `dirname` if non-existing.

    Parameters
    ----------
    dirname: str
        Path of directory to be created.

    Returns
    -------
    bool
        `True`, if directory did not exist and was created.
    """
    if os.path.exists(dirname):
        return False
    else:
        os.makedirs(dirname)
        return True


def find_files_with_suffix(path, suffix):
    matching_files = []
    # only files directly under `path`, subdirectories are ignored
    for item in sorted(os.listdir(path)):
        item_path = os.path.join(path, item)
        if os.path.isfile(item_path) and item.endswith(suffix):
            matching_files.append(item_path)
    return matching_files


def format_chromosome(chrom):
    """Prefix chromosome names with 'chr', e.g. '1' -> 'chr1', 'chrX' -> 'chrX'."""
    chrom = pd.Series(chrom, dtype=str)
    return "chr" + chrom.str.replace("^chr", "", regex=True)


def window_name(chrom, start, end):
    return f"{chrom}_{start}_{end}"


def set_figure_params(context='notebook', style='white', palette='deep', font='sans-serif', font_scale=1.1,
                      dpi=80, dpi_save=150, figsize=(5.4, 4.8), figdir=None, format=None, rc=None):
    """Set seaborn theme and rcParams for amethyst figures.

    Parameters
    ----------
    context, style, palette, font, font_scale
        Passed to :func:`seaborn.set_theme`.
    dpi, dpi_save: `int`
        Resolution of rendered / saved figures.
    figdir: `str`, optional
        Directory for figures saved with ``save=True``, stored in ``settings.figdir``.
    format: `str`, optional
        Default file format of saved figures ("pdf", "png", "svg").
    rc: `dict`, optional
        Extra rcParams; unknown keys raise ``KeyError``.
    """
    sns.set_theme(context=context, style=style, palette=palette, font=font, font_scale=font_scale,
                  rc={'figure.dpi': dpi,
                      'savefig.dpi': dpi_save,
                      'figure.figsize': list(figsize),
                      'image.cmap': 'viridis',
                      'legend.frameon': False,
                      'pdf.fonttype': 42, })
    if figdir is not None:
        settings.figdir = figdir
    if format is not None:
        settings.file_format_figs = format
    if rc is not None:
        if not isinstance(rc, dict):
            raise TypeError("rc must be dict")
        for key, value in rc.items():
            if key not in plt.rcParams:
                raise KeyError(f"unrecognized property '{key}'")
            plt.rcParams[key] = value


def savefig(
    writekey: str = "",
    show: bool = None,
    dpi: int = None,
    save=None,
):
    """
    Save the current matplotlib figure and optionally show it.

    Parameters:
    -----------
    writekey: `str`
        File name without extension, or a full path.
    show: `bool`, optional (default: None)
        Whether to display the figure. Falls back to ``settings.autoshow``.
    dpi: `int`, optional (default: None)
        The resolution of the figure in dots per inch.
    save: `bool` or `str`, optional (default: None)
        Whether to save the figure. A string is used as file name and may carry
        the extension (".pdf", ".png", ".svg").
    """
    if isinstance(save, str):
        writekey = save
        save = True
    save = settings.autosave if save is None else save
    show = settings.autoshow if show is None else show

    if save:
        if "/" in writekey or "\\" in writekey:
            filepath = writekey
            directory = os.path.dirname(filepath)
        else:
            directory = settings.figdir.rstrip("/")
            filepath = os.path.join(directory, settings.plot_prefix + writekey)

        ext = None
        for try_ext in [".svg", ".pdf", ".png", ".jpg"]:
            if filepath.endswith(try_ext):
                ext = try_ext[1:]
                filepath = filepath[: -len(try_ext)]
                break
        if ext is None:
            ext = settings.file_format_figs
        if directory:
            make_dir(directory)
        if dpi is None:
            dpi = rcParams["savefig.dpi"]
        final_filepath = f"{filepath}{settings.plot_suffix}.{ext}"
        try:
            plt.savefig(final_filepath, dpi=dpi, bbox_inches='tight')
        except ValueError as e:
            final_filepath = f"{filepath}{settings.plot_suffix}.png"
            plt.savefig(final_filepath, dpi=dpi, bbox_inches='tight')
            logg.warn(f"figure cannot be saved as {ext}, using png instead ({str(e).lower()}).")
        logg.info(f"Figure saved at: {final_filepath}")
    if show:
        plt.show()
    if save:
        plt.close()


def get_igraph_from_adjacency(adj):
    """Get an undirected, weighted igraph graph from a (symmetric) adjacency matrix."""
    import igraph as ig
    vcount = max(adj.shape)
    adj = sparse.triu(sparse.csr_matrix(adj), k=1).tocoo()
    edgelist = list(zip(adj.row.tolist(), adj.col.tolist()))
    gr = ig.Graph(n=vcount, edges=edgelist, directed=False, edge_attrs={"weight": adj.data.tolist()})
    return gr


def find_elbow(x, saturation=0.01):
    accum_gap = 0
    for i in range(1, len(x)):
        gap = x[i - 1] - x[i]
        accum_gap = accum_gap + gap
        if gap < saturation * accum_gap:
            return i
    return None


def how_many_time(tbegin, tend):
    """
    to calculate the time to evaluate the speed
    """
    t_total = tend - tbegin
    tsec = t_total % 60
    ttolmin = t_total // 60
    thour = ttolmin // 60
    tmin = ttolmin % 60
    return "running time is %d hour, %d minutes, %.2f seconds" % (thour, tmin, tsec)


def to_dense(X):
    if sparse.issparse(X):
        return X.toarray()
    return np.asarray(X)
