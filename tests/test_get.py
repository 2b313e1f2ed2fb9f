import anndata as ad
import numpy as np
import pandas as pd
import pytest

import amethyst as am


def test_markers_df(w1k):
    with pytest.raises(ValueError):
        am.get.markers_df(w1k)
    am.tl.find_cluster_markers(w1k, group_by="group")
    hyper = am.get.markers_df(w1k, "A", pval_cutoff=0.05, direction="hypermethylated")
    assert "chr1_0_1000" in set(hyper["gene"])
    assert set(hyper["cluster_id"].astype(str)) == {"A"}
    assert (hyper["p_adj"] < 0.05).all()
    assert (am.get.markers_df(w1k, log2fc_min=1)["logFC"] > 1).all()
    assert (am.get.markers_df(w1k, log2fc_max=-1)["logFC"] < -1).all()


def test_top_markers(w1k):
    markers = am.tl.find_cluster_markers(w1k, group_by="group")
    top = am.get.top_markers(markers, n=2)
    assert top.groupby("cluster_id", observed=True).size().tolist() == [2, 2]
    hypo = am.get.top_markers(markers, n=3, direction="hypomethylated")
    assert (hypo["direction"] == "hypomethylated").all()


def _collapsed():
    return pd.DataFrame({
        "test": ["1", "1", "2", "2"],
        "chr": ["chr1", "chr1", "chr2", "chr2"],
        "dmr_start": [0, 5000, 0, 800],
        "dmr_end": [1000, 5500, 500, 2000],
        "direction": ["hypermethylated", "hypomethylated", "hypomethylated", "hypomethylated"],
        "dmr_length": [1000, 500, 500, 1200],
        "p_adj": [1e-5, 1e-3, 0.02, 1e-8],
        "gene_names": ["G1,G2", "G2", "", "Satb2"],
    })


def test_dmr_df():
    dmr = _collapsed()
    assert len(am.get.dmr_df(dmr, test="1")) == 2
    assert len(am.get.dmr_df(dmr, direction="hypomethylated", min_length=600)) == 1
    assert len(am.get.dmr_df(dmr, pval_cutoff=0.01)) == 3


def test_dmr_genes():
    dmr = _collapsed()
    genes = am.get.get_dmr_genes(dmr)
    assert genes == {"1": ["G1", "G2"], "2": ["Satb2"]}
    assert am.get.get_dmr_genes(dmr, groups="1", direction="hypomethylated") == {"1": ["G2"]}
    assert am.get.get_dmr_genes(dmr, groups=["2"], upper=True) == {"2": ["SATB2"]}
    with pytest.raises(KeyError):
        am.get.get_dmr_genes(dmr.drop(columns="gene_names"))


def test_region_genes():
    var = pd.DataFrame({"gene_names": ["G1", "G1,G3", np.nan]}, index=["r1", "r2", "r3"])
    adata = ad.AnnData(X=np.zeros((2, 3)), var=var)
    assert am.get.get_region_genes(adata, ["r2", "r1", "r3", "absent"]) == ["G1", "G3"]
    with pytest.raises(ValueError):
        am.get.get_region_genes(adata, "r1")
    with pytest.raises(KeyError):
        am.get.get_region_genes(adata, ["r1"], use_gene_col="genes")
