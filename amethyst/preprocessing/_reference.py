#!/usr/bin/python3
# -*- coding: utf-8 -*-
"""
gene annotation from GTF files

"""
import numpy as np
import pandas as pd

from .. import logging as logg
from .._utils import format_chromosome

GTF_COLUMNS = ["seqid", "source", "type", "start", "end", "score", "strand", "phase", "attributes"]


def _attribute(attributes, name):
    return attributes.str.extract(rf'{name} "([^"]+)"', expand=False)


def make_ref(gtf, types=("gene", "exon"), gene_type=None):
    """
    Load a GTF annotation.

    Args:
        gtf (str): path to a (gzipped) GTF file.
        types (tuple, optional): feature types to keep. Defaults to ("gene", "exon").
        gene_type (str, optional): keep only this biotype, e.g. "protein_coding".
            Both ``gene_type`` (GENCODE) and ``gene_biotype`` (Ensembl) are read.

    Returns:
        pd.DataFrame with ``seqid, source, type, start, end, strand, gene_name,
        gene_id, gene_type, location``; coordinates are 1-based and closed.
    """
    logg.info("... Loading gene references")
    ref = pd.read_csv(gtf, sep="\t", comment="#", header=None, names=GTF_COLUMNS,
                      dtype={"seqid": str}, compression="infer")
    if types is not None:
        ref = ref[ref["type"].isin(types)]
    attributes = ref["attributes"]
    ref = ref.assign(
        seqid=format_chromosome(ref["seqid"]).to_numpy(),
        gene_id=_attribute(attributes, "gene_id"),
        gene_name=_attribute(attributes, "gene_name"),
        gene_type=_attribute(attributes, "gene_type").fillna(_attribute(attributes, "gene_biotype")),
    )
    ref["gene_name"] = ref["gene_name"].fillna(ref["gene_id"])
    if gene_type is not None:
        ref = ref[ref["gene_type"] == gene_type]
    ref = ref.drop(columns=["score", "phase", "attributes"]).reset_index(drop=True)
    ref["location"] = ref["seqid"] + "_" + ref["start"].astype(str) + "_" + ref["end"].astype(str)
    logg.info(f"... Done, {int((ref['type'] == 'gene').sum())} genes")
    return ref


def get_gene_regions(ref, genes=None, promoter=0):
    """
    Gene bodies as regions, optionally extended ``promoter`` bp upstream.

    Returns:
        pd.DataFrame with ``chr, start, end, name`` in the order of `genes`;
        unknown genes are reported and skipped.
    """
    gene_rows = ref[ref["type"] == "gene"].drop_duplicates("gene_name")
    if genes is not None:
        if isinstance(genes, str):
            genes = [genes]
        gene_rows = gene_rows.set_index("gene_name")
        missing = [g for g in genes if g not in gene_rows.index]
        if missing:
            logg.warn(f"{len(missing)} genes not found in the reference: {', '.join(missing[:10])}")
        gene_rows = gene_rows.loc[[g for g in genes if g in gene_rows.index]].reset_index()
    start = gene_rows["start"].to_numpy(dtype=np.int64)
    end = gene_rows["end"].to_numpy(dtype=np.int64)
    if promoter:
        plus = (gene_rows["strand"] != "-").to_numpy()
        start = np.where(plus, np.maximum(start - promoter, 1), start)
        end = np.where(plus, end, end + promoter)
    return pd.DataFrame({
        "chr": gene_rows["seqid"].to_numpy(),
        "start": start,
        "end": end,
        "name": gene_rows["gene_name"].to_numpy(),
    })


def get_gene_model(ref, gene):
    """Gene and exon rows of one gene, used to draw gene tracks."""
    rows = ref[ref["gene_name"] == gene]
    if rows.empty:
        raise KeyError(f"{gene} is not present in the reference")
    return rows
