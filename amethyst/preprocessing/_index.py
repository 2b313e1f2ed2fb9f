#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
chromosome indexing of the call store

"""
from concurrent.futures import ProcessPoolExecutor
from functools import partial

import numpy as np
import pandas as pd

from .. import logging as logg
from .._settings import settings
from .._check import check_anndata
from ..io import read_chrom_column


def _chrom_blocks(chroms):
    """Start row and row count of every chromosome block in a sorted chr column."""
    n = len(chroms)
    if n == 0:
        return pd.DataFrame(columns=["chr", "start", "count"])
    change = np.flatnonzero(chroms[1:] != chroms[:-1]) + 1
    starts = np.r_[0, change]
    counts = np.diff(np.r_[starts, n])
    names = chroms[starts]
    if isinstance(names[0], bytes):
        names = names.astype(str)
    if len(set(names)) != len(names):
        raise ValueError("calls are not sorted by chromosome")
    return pd.DataFrame({"chr": names, "start": starts.astype(np.int64), "count": counts.astype(np.int64)})


def _index_cell(cell, context):
    barcode, path = cell
    try:
        chroms = read_chrom_column(path, barcode, context)
    except KeyError:
        return None
    blocks = _chrom_blocks(chroms)
    blocks.insert(0, "cell", barcode)
    return blocks


def index_chrom(adata, context="CG", threads=None, key=None):
    """
    Index the row blocks each chromosome occupies in every cell's calls.

    Windows can then be computed by reading one chromosome slice at a time
    instead of whole cells.

    Args:
        adata (AnnData): cell object from `create_object`.
        context (str, optional): "CG" or "CH". Defaults to "CG".
        threads (int, optional): worker processes. Defaults to ``settings.n_jobs``.
        key (str, optional): name in ``adata.uns['index']``. Defaults to ``chr_{context}``.

    Returns:
        pd.DataFrame with columns ``cell``, ``chr``, ``start`` (0-based row) and ``count``.
    """
    check_anndata(adata)
    if "h5path" not in adata.obs.columns:
        raise KeyError("adata.obs has no 'h5path' column. Please run create_object first!")
    key = key or f"chr_{context.lower()}"
    cells = list(adata.obs["h5path"].items())
    threads = threads or settings.n_jobs
    worker = partial(_index_cell, context=context)
    logg.info(f"...indexing {len(cells)} cells in {context} context", reset=True)
    if threads > 1:
        with ProcessPoolExecutor(max_workers=threads) as executor:
            blocks = list(executor.map(worker, cells))
    else:
        blocks = [worker(cell) for cell in cells]
    for (barcode, _), block in zip(cells, blocks):
        if block is None:
            logg.warn(f"{barcode} has no {context} calls, skipping")
    blocks = [block for block in blocks if block is not None]
    if blocks:
        index = pd.concat(blocks, ignore_index=True)
    else:
        index = pd.DataFrame(columns=["cell", "chr", "start", "count"])
    if 'index' not in adata.uns:
        adata.uns['index'] = {}
    adata.uns['index'][key] = index
    logg.info(f"...index stored as adata.uns['index']['{key}']", time=True)
    return index


def get_index(adata, context="CG", key=None):
    key = key or f"chr_{context.lower()}"
    if 'index' not in adata.uns or key not in adata.uns['index']:
        raise KeyError(f"Index '{key}' not found. Please run index_chrom(adata, context='{context}') first!")
    return adata.uns['index'][key]


def cell_blocks(index):
    """Group an index into {cell: {chr: (start, count)}}."""
    blocks = {}
    for cell, chrom, start, count in index[["cell", "chr", "start", "count"]].itertuples(index=False):
        blocks.setdefault(cell, {})[chrom] = (int(start), int(count))
    return blocks
