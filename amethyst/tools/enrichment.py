#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
Gene Ontology over-representation of gene sets

"""
from collections import defaultdict

import pandas as pd
from scipy.stats import hypergeom

from .. import logging as logg
from .markers import adjust_pvalues

NAMESPACES = {
    "BP": "biological_process",
    "MF": "molecular_function",
    "CC": "cellular_component",
}
GAF_ASPECTS = {"P": "BP", "F": "MF", "C": "CC"}


def read_gaf(path, ontology=None, upper=False):
    """
    Gene -> GO terms from a GAF 2.x annotation file.

    Annotations qualified with NOT are skipped. `ontology` ("BP", "MF" or
    "CC") keeps a single aspect.
    """
    gaf = pd.read_csv(path, sep="\t", comment="!", header=None, dtype=str, usecols=range(9),
                      compression="infer")
    gaf = gaf[~gaf[3].fillna("").str.contains("NOT")]
    if ontology is not None:
        gaf = gaf[gaf[8].map(GAF_ASPECTS) == ontology]
    symbols = gaf[2].str.upper() if upper else gaf[2]
    gene2go = defaultdict(set)
    for gene, go in zip(symbols, gaf[4]):
        gene2go[gene].add(go)
    return dict(gene2go)


def read_gene2go(path, sep="\t", upper=False):
    """
    Gene -> GO terms from a two-column table.

    The second column holds one GO ID per row or several separated by commas.
    """
    table = pd.read_csv(path, sep=sep, header=None, dtype=str, comment="#").dropna()
    gene2go = defaultdict(set)
    for gene, gos in table.iloc[:, :2].itertuples(index=False):
        if upper:
            gene = gene.upper()
        gene2go[gene].update(g.strip() for g in gos.split(",") if g.strip())
    return dict(gene2go)


def load_go_dag(obo):
    """Parse a GO OBO file with goatools."""
    from goatools.obo_parser import GODag
    return GODag(obo, load_obsolete=False, prt=None)


def _propagate(gene2go, dag, namespace=None):
    ancestors = {}
    out = {}
    for gene, terms in gene2go.items():
        full = set()
        for go in terms:
            if go not in dag:
                continue
            if go not in ancestors:
                ancestors[go] = {dag[go].id} | dag[go].get_all_parents()
            full |= ancestors[go]
        if namespace is not None:
            full = {go for go in full if dag[go].namespace == namespace}
        if full:
            out[gene] = full
    return out


def go_enrichment(genes, background, gene2go, dag=None, ontology=None, min_size=5, method="fdr_bh"):
    """
    Over-representation of GO terms in a gene set.

    Each term is tested with the upper tail of the hypergeometric distribution
    (one-sided Fisher's exact test) among annotated background genes. When a
    GO `dag` is given, annotations are propagated to all ancestor terms.

    Parameters
    ----------
    genes
        Genes of interest, e.g. from `get_dmr_genes`.
    background
        Gene universe, e.g. all genes of the tested matrix.
    gene2go
        Mapping gene -> set of GO IDs (`read_gaf` / `read_gene2go`).
    dag
        `load_go_dag` result.
    ontology
        "BP", "MF" or "CC"; requires `dag`.
    min_size
        Minimum number of annotated background genes per term.
    method
        statsmodels correction across terms.

    Returns
    -------
    pd.DataFrame
        ``GO_ID, term, annotated, significant, expected, p_val, p_adj, genes``
        sorted by p-value.
    """
    if ontology is not None:
        if ontology not in NAMESPACES:
            raise ValueError(f"ontology must be one of {list(NAMESPACES)}, got {ontology!r}")
        if dag is None:
            raise ValueError("Filtering by ontology needs a GO dag. Please run load_go_dag first!")
    if dag is not None:
        gene2go = _propagate(gene2go, dag, NAMESPACES.get(ontology))

    universe = {g for g in background if gene2go.get(g)}
    study = {g for g in genes if g in universe}
    if not universe:
        raise ValueError("None of the background genes is annotated.")
    if not study:
        logg.warn("None of the genes of interest is annotated.")

    term2genes = defaultdict(set)
    for gene in universe:
        for go in gene2go[gene]:
            term2genes[go].add(gene)

    rows = []
    M, N = len(universe), len(study)
    for go, members in term2genes.items():
        n = len(members)
        if n < min_size:
            continue
        hits = sorted(members & study)
        k = len(hits)
        rows.append((go, n, k, n * N / M, hypergeom.sf(k - 1, M, n, N), ",".join(hits)))
    columns = ["GO_ID", "annotated", "significant", "expected", "p_val", "genes"]
    res = pd.DataFrame(rows, columns=columns)
    res.insert(1, "term", [dag[go].name if dag is not None else "" for go in res["GO_ID"]])
    res["p_adj"] = adjust_pvalues(res["p_val"], method) if len(res) else []
    res = res.sort_values(["p_val", "GO_ID"]).reset_index(drop=True)
    logg.info(f"...{len(res)} GO terms tested, {N} of {M} annotated genes in the set")
    return res[["GO_ID", "term", "annotated", "significant", "expected", "p_val", "p_adj", "genes"]]
