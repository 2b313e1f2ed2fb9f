from typing import List, Optional, Union

import pandas as pd
from anndata import AnnData


def markers_df(
    adata: AnnData,
    group: Optional[Union[str, List[str]]] = None,
    *,
    key: str = "cluster_markers",
    pval_cutoff: Optional[float] = None,
    log2fc_min: Optional[float] = None,
    log2fc_max: Optional[float] = None,
    direction: Optional[str] = None,
) -> pd.DataFrame:
    """\
    :func:`amethyst.tl.find_cluster_markers` results in the form of a
    :class:`~pandas.DataFrame`.

    Params
    ------
    adata
        Object to get results from.
    group
        Which group(s) to return results from. All groups are returned if
        group is `None`.
    key
        Key the marker table was stored under.
    pval_cutoff
        Return only adjusted p-values below the cutoff.
    log2fc_min
        Minimum logFC to return.
    log2fc_max
        Maximum logFC to return.
    direction
        "hypermethylated" or "hypomethylated".

    Example
    -------
    >>> amethyst.tl.find_cluster_markers(gene_ch, group_by="cluster_id")
    >>> top = amethyst.get.markers_df(gene_ch, pval_cutoff=0.05, direction="hypomethylated")
    """
    if key not in adata.uns:
        raise ValueError(f"{key} was not found in `adata.uns`. Please run find_cluster_markers first!")
    d = adata.uns[key]
    if isinstance(group, str):
        group = [group]
    if group is not None:
        d = d[d["cluster_id"].astype(str).isin(group)]
    if pval_cutoff is not None:
        d = d[d["p_adj"] < pval_cutoff]
    if log2fc_min is not None:
        d = d[d["logFC"] > log2fc_min]
    if log2fc_max is not None:
        d = d[d["logFC"] < log2fc_max]
    if direction is not None:
        d = d[d["direction"] == direction]
    return d.sort_values(["cluster_id", "p_adj", "p_val"], kind="mergesort").reset_index(drop=True)


def top_markers(markers: pd.DataFrame, n: int = 5, direction: Optional[str] = None) -> pd.DataFrame:
    """The `n` most significant markers of every cluster."""
    if direction is not None:
        markers = markers[markers["direction"] == direction]
    markers = markers.sort_values(["cluster_id", "p_adj", "p_val"], kind="mergesort")
    return markers.groupby("cluster_id", observed=True, sort=False).head(n).reset_index(drop=True)


def dmr_df(dmr: pd.DataFrame,
           test: Optional[Union[str, List[str]]] = None,
           direction: Optional[str] = None,
           min_length: Optional[int] = None,
           pval_cutoff: Optional[float] = None,
           ) -> pd.DataFrame:
    """ subset a DMR table for given comparisons

    Args:
        dmr (pd.DataFrame): output of `filter_dmr` or `collapse_dmr`.
        test (str or list, optional): comparisons to keep. Defaults to all.
        direction (str, optional): "hypermethylated" or "hypomethylated".
        min_length (int, optional): minimum ``dmr_length`` of collapsed regions.
        pval_cutoff (float, optional): maximum ``p_adj``.

    Example
    -------
    >>> collapsed = amethyst.tl.collapse_dmr(filtered, max_dist=1000, ref=ref)
    >>> amethyst.get.dmr_df(collapsed, test="3", direction="hypomethylated")
    """
    if isinstance(test, str):
        test = [test]
    d = dmr
    if test is not None:
        d = d[d["test"].astype(str).isin(test)]
    if direction is not None:
        d = d[d["direction"] == direction]
    if min_length is not None:
        d = d[d["dmr_length"] >= min_length]
    if pval_cutoff is not None:
        d = d[d["p_adj"] < pval_cutoff]
    return d.reset_index(drop=True)


def _split_genes(values, upper=False):
    genes = []
    for value in values.dropna():
        for g in str(value).split(","):
            g = g.strip()
            if g:
                genes.append(g.upper() if upper else g)
    return list(dict.fromkeys(genes))


def get_region_genes(
    adata: AnnData,
    regions: List[str],
    use_gene_col: str = 'gene_names',
    upper: bool = False,
) -> List[str]:
    """\
    Genes annotated on a set of features of a region matrix.

    Params
    ------
    adata
        Genome matrix whose ``var[use_gene_col]`` lists overlapping genes.
    regions
        Feature names.
    use_gene_col
        Column of `adata.var` with comma-separated gene names.
    upper
        Upper-case the gene names, as used for offline GO annotations.
    """
    if not isinstance(regions, list):
        raise ValueError("regions must be a list")
    if use_gene_col not in adata.var.columns:
        raise KeyError(f"'{use_gene_col}' is not present in adata.var")
    valid_regions = [region for region in regions if region in adata.var.index]
    return _split_genes(adata.var.loc[valid_regions, use_gene_col], upper=upper)


def get_dmr_genes(
    dmr: pd.DataFrame,
    groups: Optional[Union[List[str], str]] = None,
    direction: str = "both",
    use_gene_col: str = 'gene_names',
    upper: bool = False,
) -> dict:
    """
    Genes overlapping the DMRs of each comparison.

    Args:
        dmr (pd.DataFrame): output of `collapse_dmr` with a `ref`.
        groups (str or list, optional): comparisons to report, defaults to all.
        direction (str, optional): "hypermethylated", "hypomethylated" or "both".
        use_gene_col (str, optional): column with comma-separated genes.
        upper (bool, optional): upper-case gene names.

    Returns:
        dict[str, list[str]]: unique genes per comparison.
    """
    if use_gene_col not in dmr.columns:
        raise KeyError(f"'{use_gene_col}' not in the DMR table. Please run collapse_dmr with a reference first!")
    if isinstance(groups, str):
        groups = [groups]
    if groups is None:
        groups = list(pd.unique(dmr["test"].astype(str)))
    if direction != "both":
        dmr = dmr[dmr["direction"] == direction]
    group_genes = {}
    for g in groups:
        group_genes[g] = _split_genes(dmr.loc[dmr["test"].astype(str) == g, use_gene_col], upper=upper)
    return group_genes
