#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
Per-cell methylation call store (HDF5), coverage file import and workspaces.

Calls for one cell live at ``/{context}/{barcode}/1`` as a compound table::

    chr   pos   pct    c   t
    chr1  10468 100.0  1   0

``c`` is the number of reads supporting a methylated cytosine, ``t`` the
number supporting a converted (unmethylated) one and ``pct`` is
``100 * c / (c + t)``. Rows are sorted by chromosome and position so that
each chromosome occupies one contiguous block of rows.
"""
import os
import re
from collections import namedtuple
from concurrent.futures import ProcessPoolExecutor
from functools import partial
from pathlib import Path
from typing import List, Optional

import h5py
import numpy as np
import pandas as pd
import muon as mu

from . import logging as logg
from ._utils import find_files_with_suffix, format_chromosome

CALL_DTYPE = np.dtype([("chr", "S32"), ("pos", "<i8"), ("pct", "<f8"), ("c", "<i4"), ("t", "<i4")])


def _dataset_name(barcode, context):
    return f"{context}/{barcode}/1"


def write_cell_calls(h5path, barcode, calls: pd.DataFrame, context="CG"):
    """Write (or replace) the calls of one cell.

    `calls` needs the columns ``chr``, ``pos``, ``c`` and ``t``; ``pct`` is
    recomputed. Rows are sorted by chromosome and position before writing.
    """
    missing = {"chr", "pos", "c", "t"} - set(calls.columns)
    if missing:
        raise ValueError(f"calls for {barcode} are missing columns: {sorted(missing)}")
    calls = calls.sort_values(["chr", "pos"], kind="mergesort")
    arr = np.zeros(len(calls), dtype=CALL_DTYPE)
    arr["chr"] = calls["chr"].astype(str).to_numpy().astype("S32")
    arr["pos"] = calls["pos"].to_numpy()
    c = calls["c"].to_numpy()
    t = calls["t"].to_numpy()
    arr["c"] = c
    arr["t"] = t
    with np.errstate(divide="ignore", invalid="ignore"):
        arr["pct"] = np.where(c + t > 0, 100 * c / (c + t), np.nan)
    name = _dataset_name(barcode, context)
    with h5py.File(h5path, "a") as f:
        if name in f:
            del f[name]
        f.create_dataset(name, data=arr, compression="gzip")


def read_cell_calls(h5path, barcode, context="CG", start: Optional[int] = None, count: Optional[int] = None):
    """Read the calls of one cell, optionally only ``count`` rows from ``start`` (0-based)."""
    name = _dataset_name(barcode, context)
    with h5py.File(h5path, "r") as f:
        if name not in f:
            raise KeyError(f"No {context} calls for cell {barcode} in {h5path}")
        dset = f[name]
        if start is None:
            rows = dset[()]
        else:
            stop = dset.shape[0] if count is None else start + count
            rows = dset[start:stop]
    return _rows_to_frame(rows)


def _rows_to_frame(rows):
    return pd.DataFrame({
        "chr": rows["chr"].astype(str),
        "pos": rows["pos"],
        "pct": rows["pct"],
        "c": rows["c"],
        "t": rows["t"],
    })


def read_chrom_column(h5path, barcode, context="CG"):
    """Read only the chromosome field of one cell's calls."""
    name = _dataset_name(barcode, context)
    with h5py.File(h5path, "r") as f:
        if name not in f:
            raise KeyError(f"No {context} calls for cell {barcode} in {h5path}")
        return f[name].fields("chr")[()]


def iter_cell_blocks(h5path, barcode, context, blocks):
    """Yield ``(chrom, rows)`` for each ``{chrom: (start, count)}`` block of one cell."""
    name = _dataset_name(barcode, context)
    with h5py.File(h5path, "r") as f:
        if name not in f:
            raise KeyError(f"No {context} calls for cell {barcode} in {h5path}")
        dset = f[name]
        for chrom, (start, count) in blocks.items():
            yield chrom, dset[start:start + count]


def list_barcodes(h5path, context="CG"):
    with h5py.File(h5path, "r") as f:
        if context not in f:
            return []
        return list(f[context].keys())


class CoverageFormat(
    namedtuple('CoverageFormat', ['chrom', 'pos', 'meth', 'umeth', 'context', 'coverage', 'sep', 'header'])):
    """Describes the columns in a per-cell coverage file.

    chrom, pos, meth, umeth, context (int)
        0-based column indices. ``umeth`` holds unmethylated counts, or the
        total coverage when ``coverage`` is True.
    coverage (bool)
        whether the ``umeth`` column is total coverage
    sep (str)
        column separator
    header (bool)
        whether the file starts with a header line
    """


FORMATS = {
    # chr1 10004 + 0 0 CHH CCC
    'bismark': CoverageFormat(0, 1, 3, 4, 5, False, "\t", False),
    # chr1 C 10060 CHH CT 1.00 1 1
    'bsseeker2': CoverageFormat(0, 2, 6, 7, 3, True, "\t", False),
    'bsseeker': CoverageFormat(0, 2, 6, 7, 3, True, "\t", False),
    # chr1 10004 + CCT 0 1 1
    'methylpy': CoverageFormat(0, 1, 4, 5, 3, True, "\t", False),
    'allc': CoverageFormat(0, 1, 4, 5, 3, True, "\t", False),
}


def _custom_format(format_string):
    """
    Create a CoverageFormat from a user specified string.

    Args:
        format_string: chrom:pos:meth:coverage(c)/unmeth(u):context:sep:header,
            1-based column indices, e.g. "1:2:4:5u:6:\\t:0"
    """
    parts = format_string.split(":")
    if len(parts) != 7:
        raise ValueError("Invalid number of ':'-separated values in custom input format")
    try:
        chrom, pos, meth = [int(p) - 1 for p in parts[:3]]
        context = int(parts[4]) - 1
        header = bool(int(parts[6]))
    except ValueError as e:
        raise ValueError(f"Format parsing error : {str(e)}") from e
    match = re.fullmatch(r'(\d+)([cuCU])', parts[3])
    if not match:
        raise ValueError(
            "The 4th column of a custom input format must contain an integer and "
            "either 'c' for coverage or 'u' for unmethylated counts (e.g. '4c'), "
            f"but you provided '{parts[3]}'."
        )
    umeth, info = match.groups()
    umeth = int(umeth) - 1
    coverage = info.lower() == 'c'
    sep = "\t" if parts[5].lower() in ("\\t", "tab", "t") else parts[5]
    return CoverageFormat(chrom, pos, meth, umeth, context, coverage, sep, header)


def reorder_columns_by_index(pipeline):
    """Column layout of the coverage files written by a methylation pipeline.

    Args:
        pipeline (str): bismark, bsseeker2, bsseeker, methylpy, allc or a custom
            order string "chrom:pos:meth:cov(c)/unmeth(u):context:sep:header"
            (1-based), e.g. "1:2:4:5u:6:\\t:0"

    Returns:
        CoverageFormat
    """
    key = pipeline.lower()
    if key in FORMATS:
        logg.info("## BED column format: " + key)
        return FORMATS[key]
    elif ":" in pipeline:
        logg.info("## BED column format:  Custom")
        return _custom_format(pipeline)
    else:
        raise ValueError(f"Invalid format type or custom order {pipeline}.")


def read_coverage_file(path, fmt: CoverageFormat, context="CG"):
    """Parse one per-cell coverage file into call-store columns for one context."""
    usecols = [fmt.chrom, fmt.pos, fmt.meth, fmt.umeth, fmt.context]
    names = ["chr", "pos", "meth", "umeth", "context"]
    df = pd.read_csv(
        path,
        sep=fmt.sep,
        header=0 if fmt.header else None,
        usecols=usecols,
        compression="infer",
        comment="#",
    )
    # columns come back in file order, not in usecols order
    df.columns = [names[i] for i in np.argsort(usecols)]
    df["chr"] = df["chr"].astype(str)
    df["context"] = df["context"].astype(str)
    is_cg = df["context"].str.startswith("CG") | (df["context"] == "CpG")
    df = df[is_cg] if context == "CG" else df[~is_cg]
    c = df["meth"].astype(int)
    t = df["umeth"].astype(int) - c if fmt.coverage else df["umeth"].astype(int)
    calls = pd.DataFrame({
        "chr": format_chromosome(df["chr"]).to_numpy(),
        "pos": df["pos"].astype(np.int64).to_numpy(),
        "c": c.to_numpy(),
        "t": t.to_numpy(),
    })
    calls = calls[(calls["c"] + calls["t"]) > 0]
    return calls.sort_values(["chr", "pos"], kind="mergesort").reset_index(drop=True)


def summarize_calls(calls, context="CG"):
    """Per-cell totals: observed sites, coverage and global methylation percent."""
    n_meth = int(np.sum(calls["c"] > 0))
    n_unmeth = int(np.sum(calls["t"] > 0))
    total = n_meth + n_unmeth
    return {
        "n_sites": len(calls),
        "cov": int(np.sum(calls["c"] + calls["t"])),
        f"m{context.lower()}_pct": 100 * n_meth / total if total else np.nan,
    }


def cell_name_from_path(path, suffix=None):
    """File name without `suffix`, e.g. "A.rep1.bed" -> "A.rep1"."""
    name = os.path.basename(path)
    if suffix and name.endswith(suffix) and len(name) > len(suffix):
        return name[:-len(suffix)].rstrip(".")
    return name.split('.')[0]


def _read_partial(path, fmt, context, suffix=None):
    return cell_name_from_path(path, suffix), read_coverage_file(path, fmt, context)


def import_cells(input_dir: Path,
                 h5path: Path,
                 context: str = "CG",
                 suffix: str = "bed",
                 pipeline: str = "bismark",
                 cpu: int = 1,
                 exclude_chrom: List[str] = None):
    """
    Import a directory of single-cell coverage files into one HDF5 call store.

    Files are parsed in parallel and written one after another, the store is
    not safe for concurrent writers.

    Args:
        input_dir (str): directory containing the per-cell coverage files
        h5path (str): call store to create or extend
        context (str, optional): "CG" or "CH". Defaults to "CG".
        suffix (str, optional): file suffix to pick up. Defaults to "bed".
        pipeline (str, optional): coverage layout, see `reorder_columns_by_index`.
        cpu (int, optional): reader processes. Defaults to 1.
        exclude_chrom (List[str], optional): chromosomes to drop, e.g. ["chrM"].

    Returns:
        pd.DataFrame: per-cell statistics indexed by cell name, also written to
        ``<h5path stem>_cell_stats.csv``.
    """
    cells = find_files_with_suffix(input_dir, suffix)
    if not cells:
        raise FileNotFoundError(f"No files ending with '{suffix}' found in {input_dir}")
    names = [cell_name_from_path(path, suffix) for path in cells]
    duplicated = sorted({name for name in names if names.count(name) > 1})
    if duplicated:
        raise ValueError(f"Several files map to the same cell name: {', '.join(duplicated)}")
    fmt = reorder_columns_by_index(pipeline)
    cpu = max(1, min(cpu, len(cells)))
    logg.info(f"...import {len(cells)} cells with {cpu} cpus", reset=True)
    exclude_chrom = set(exclude_chrom or [])

    reader = partial(_read_partial, fmt=fmt, context=context, suffix=suffix)
    if cpu == 1:
        parsed = map(reader, cells)
    else:
        executor = ProcessPoolExecutor(max_workers=cpu)
        parsed = executor.map(reader, cells)

    stats = {}
    try:
        for cell_name, calls in parsed:
            if exclude_chrom:
                calls = calls[~calls["chr"].isin(exclude_chrom)]
            if calls.empty:
                logg.warn(f"{cell_name} has no {context} calls, skipping")
                continue
            write_cell_calls(h5path, cell_name, calls, context=context)
            stats[cell_name] = summarize_calls(calls, context)
    finally:
        if cpu > 1:
            executor.shutdown()

    stat_df = pd.DataFrame.from_dict(stats, orient="index")
    stat_df.index.name = "cell_id"
    stat_path = os.path.splitext(str(h5path))[0] + "_cell_stats.csv"
    stat_df.to_csv(stat_path)
    logg.info(f"## Basic summary writing to {stat_path} ...", time=True)
    return stat_df


def save_workspace(path, copy=False, **matrices):
    """
    Bundle several genome matrices into one ``.h5mu`` workspace.

    Example:
        amethyst.io.save_workspace("brain.h5mu", cg_100k_score=w100k, gene_ch=gene_ch)
    """
    if not matrices:
        raise ValueError("No matrices given to save.")
    mdata = mu.MuData(matrices)
    mdata.uns['description'] = f"Number of Modalities: {len(mdata.mod)}\n"
    mdata.uns['description'] += f"Modalities: {', '.join(mdata.mod.keys())}\n"
    mdata.uns['matrices'] = list(matrices.keys())
    if not str(path).endswith(".h5mu"):
        path = f"{path}.h5mu"
    mdata.write(path)
    logg.info(f"...workspace saved at {path}")
    if copy:
        return mdata


def load_workspace(path):
    """Load a workspace written by `save_workspace`; matrices are in ``.mod``."""
    mdata = mu.read_h5mu(path)
    logg.info(f"...loaded workspace with matrices: {', '.join(mdata.mod.keys())}")
    return mdata
