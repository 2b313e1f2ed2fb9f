#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
differentially methylated regions from group window sums

"""
import time
from typing_extensions import Literal

import numpy as np
import pandas as pd
from scipy import stats
from tqdm import tqdm

from .. import logging as logg
from .._settings import settings
from .._check import check_in
from .._utils import how_many_time
from .markers import adjust_pvalues, log_fold_change

# ignore division by 0 and division by NaN error
np.seterr(divide="ignore", invalid="ignore")

WINDOW_COLUMNS = ["chr", "start", "end"]


def _sum_groups(sum_matrix):
    """Group names present as ``{g}_c`` / ``{g}_t`` column pairs, in column order."""
    groups = []
    for col in sum_matrix.columns:
        if col.endswith("_c") and f"{col[:-2]}_t" in sum_matrix.columns:
            groups.append(col[:-2])
    if not groups:
        raise ValueError("sum_matrix has no '{group}_c' / '{group}_t' columns. Please run calc_smoothed_windows first!")
    return groups


def _split_groups(value):
    return [g.strip() for g in str(value).split(",") if g.strip()]


def _comparisons(groups, each_vs_all, comparisons):
    """List of (name, members, others)."""
    if comparisons is not None:
        if isinstance(comparisons, str):
            comparisons = pd.read_csv(comparisons, sep=None, engine="python")
        missing = {"name", "A", "B"} - set(comparisons.columns)
        if missing:
            raise KeyError(f"comparisons needs the columns name, A and B; missing {sorted(missing)}")
        tests = []
        for name, a, b in comparisons[["name", "A", "B"]].itertuples(index=False):
            members, others = _split_groups(a), _split_groups(b)
            unknown = set(members + others) - set(groups)
            if unknown:
                raise KeyError(f"comparison {name}: groups {sorted(unknown)} not found in sum_matrix")
            tests.append((str(name), members, others))
        return tests
    if each_vs_all:
        return [(g, [g], [o for o in groups if o != g]) for g in groups]
    raise ValueError("Set each_vs_all=True or provide comparisons.")


def _fisher(a, b, c, d):
    p = np.empty(len(a))
    for i in tqdm(range(len(a)), disable=settings.verbosity < 3, leave=False):
        p[i] = stats.fisher_exact([[a[i], b[i]], [c[i], d[i]]])[1]
    return p


def _chisq(a, b, c, d):
    n = a + b + c + d
    denom = (a + b) * (c + d) * (a + c) * (b + d)
    chi2 = np.where(denom > 0, n * (a * d - b * c) ** 2 / denom, 0.0)
    return stats.chi2.sf(chi2, df=1)


def test_dmr(sum_matrix, each_vs_all=True, comparisons=None, nmin_total=3, nmin_group=3,
             method: Literal['fisher', 'chisq'] = "fisher"):
    """
    Test every window for a difference in methylated / unmethylated sites between groups.

    For each comparison, the methylated (c) and unmethylated (t) sums of the
    member groups and of the other groups form a 2x2 table.

    Args:
        sum_matrix (pd.DataFrame): ``sum_matrix`` from `calc_smoothed_windows`.
        each_vs_all (bool, optional): test every group against all others. Defaults to True.
        comparisons (pd.DataFrame or str, optional): table with ``name``, ``A`` and ``B``,
            where A and B are comma-separated groups; replaces `each_vs_all`.
        nmin_total (int, optional): minimum sites (c + t) over all compared groups.
        nmin_group (int, optional): minimum sites on each side of the comparison.
        method (str, optional): "fisher" (exact) or "chisq". Defaults to "fisher".

    Returns:
        pd.DataFrame, one row per tested window and comparison, with
        ``chr, start, end, test, member_c, member_t, rest_c, rest_t, member_pct, rest_pct, p_val``.
    """
    check_in(["fisher", "chisq"], method=method)
    groups = _sum_groups(sum_matrix)
    tests = _comparisons(groups, each_vs_all, comparisons)
    tbegin = time.time()
    logg.info(f"...{len(tests)} comparisons over {len(sum_matrix)} windows ({method})", reset=True)

    results = []
    for name, members, others in tests:
        a = sum_matrix[[f"{g}_c" for g in members]].sum(axis=1).to_numpy(dtype=float)
        b = sum_matrix[[f"{g}_t" for g in members]].sum(axis=1).to_numpy(dtype=float)
        c = sum_matrix[[f"{g}_c" for g in others]].sum(axis=1).to_numpy(dtype=float)
        d = sum_matrix[[f"{g}_t" for g in others]].sum(axis=1).to_numpy(dtype=float)
        keep = (a + b >= nmin_group) & (c + d >= nmin_group) & (a + b + c + d >= nmin_total)
        if not keep.any():
            logg.warn(f"No window passes the coverage thresholds for {name}")
            continue
        a, b, c, d = a[keep], b[keep], c[keep], d[keep]
        p = _fisher(a, b, c, d) if method == "fisher" else _chisq(a, b, c, d)
        df = sum_matrix.loc[keep, WINDOW_COLUMNS].reset_index(drop=True)
        df["test"] = name
        df["member_c"], df["member_t"], df["rest_c"], df["rest_t"] = a, b, c, d
        df["member_pct"] = 100 * a / (a + b)
        df["rest_pct"] = 100 * c / (c + d)
        df["p_val"] = p
        results.append(df)
    if not results:
        raise ValueError("No window could be tested. Lower nmin_group / nmin_total.")
    dmr = pd.concat(results, ignore_index=True)
    logg.info(f"...{len(dmr)} tests, {how_many_time(tbegin, time.time())}", time=True)
    return dmr


def filter_dmr(dmr, method="bonferroni", filter=True, p_threshold=0.01, log_threshold=2):
    """
    Adjust p-values within each comparison and flag significant windows.

    Adds ``p_adj``, ``logFC`` (log2 of member over rest percent), ``direction``
    and ``significant`` (``p_adj <= p_threshold`` and ``|logFC| >= log_threshold``).
    With `filter`, only significant windows are returned.
    """
    dmr = dmr.copy()
    dmr["p_adj"] = np.nan
    for _, idx in dmr.groupby("test", sort=False).groups.items():
        dmr.loc[idx, "p_adj"] = adjust_pvalues(dmr.loc[idx, "p_val"], method)
    dmr["logFC"] = log_fold_change(dmr["member_pct"], dmr["rest_pct"])
    dmr["direction"] = np.where(dmr["logFC"] > 0, "hypermethylated", "hypomethylated")
    dmr["significant"] = (dmr["p_adj"] <= p_threshold) & (dmr["logFC"].abs() >= log_threshold)
    logg.info(f"...{int(dmr['significant'].sum())} of {len(dmr)} windows significant")
    if filter:
        dmr = dmr[dmr["significant"]].reset_index(drop=True)
    return dmr


def _overlapping_genes(collapsed, ref):
    genes = ref[ref["type"] == "gene"]
    by_chrom = {chrom: df for chrom, df in genes.groupby("seqid")}
    out = []
    for chrom, start, end in collapsed[["chr", "dmr_start", "dmr_end"]].itertuples(index=False):
        g = by_chrom.get(chrom)
        if g is None:
            out.append("")
            continue
        hit = (g["start"].to_numpy() <= end) & (g["end"].to_numpy() >= start)
        out.append(",".join(pd.unique(g["gene_name"].to_numpy()[hit])))
    return out


def collapse_dmr(dmr, max_dist=0, min_length=0, ref=None):
    """
    Merge adjacent significant windows into regions.

    Windows of the same comparison and direction on one chromosome are merged
    when the gap to the previous window is at most `max_dist` bp. Regions shorter
    than `min_length` are dropped. With a `ref` from `make_ref`, overlapping genes
    are listed in ``gene_names``.

    Returns:
        pd.DataFrame with ``test, chr, dmr_start, dmr_end, direction, dmr_length,
        n_windows, logFC`` (mean), ``p_adj`` (min) and optionally ``gene_names``.
    """
    if "significant" in dmr.columns:
        dmr = dmr[dmr["significant"]]
    if "direction" not in dmr.columns:
        raise KeyError("dmr has no 'direction' column. Please run filter_dmr first!")
    columns = ["test", "chr", "dmr_start", "dmr_end", "direction", "dmr_length", "n_windows", "logFC", "p_adj"]
    if dmr.empty:
        collapsed = pd.DataFrame(columns=columns)
        if ref is not None:
            collapsed["gene_names"] = []
        return collapsed

    dmr = dmr.sort_values(["test", "direction", "chr", "start"], kind="mergesort").reset_index(drop=True)
    key = dmr[["test", "direction", "chr"]]
    new_key = (key != key.shift()).any(axis=1).to_numpy()
    running_end = dmr.groupby(["test", "direction", "chr"], sort=False)["end"].cummax().shift().to_numpy()
    gap = dmr["start"].to_numpy() - running_end
    new_region = new_key | ~(gap <= max_dist)
    dmr["region"] = np.cumsum(new_region)

    collapsed = dmr.groupby("region", sort=False).agg(
        test=("test", "first"),
        chr=("chr", "first"),
        dmr_start=("start", "min"),
        dmr_end=("end", "max"),
        direction=("direction", "first"),
        n_windows=("start", "size"),
        logFC=("logFC", "mean"),
        p_adj=("p_adj", "min"),
    ).reset_index(drop=True)
    collapsed["dmr_length"] = collapsed["dmr_end"] - collapsed["dmr_start"]
    collapsed = collapsed[collapsed["dmr_length"] >= min_length][columns].reset_index(drop=True)
    if ref is not None:
        collapsed["gene_names"] = _overlapping_genes(collapsed, ref)
    logg.info(f"...{len(dmr)} windows collapsed into {len(collapsed)} regions")
    return collapsed
