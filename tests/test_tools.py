import numpy as np
import pandas as pd
import pytest
from scipy.stats import hypergeom

import amethyst as am

OBO = """\
format-version: 1.2
data-version: test

[Term]
id: GO:0000001
name: root process
namespace: biological_process

[Term]
id: GO:0000002
name: child process
namespace: biological_process
is_a: GO:0000001 ! root process

[Term]
id: GO:0000003
name: some function
namespace: molecular_function
"""


def test_cluster_markers(w1k):
    markers = am.tl.find_cluster_markers(w1k, group_by="group")
    assert list(markers.columns) == ["gene", "cluster_id", "mean_1", "mean_2", "logFC", "direction", "p_val", "p_adj"]
    assert len(markers) == 2 * w1k.n_vars
    row = markers[(markers["gene"] == "chr1_0_1000") & (markers["cluster_id"] == "A")].iloc[0]
    assert row["mean_1"] == pytest.approx(100)
    assert row["mean_2"] == pytest.approx(0)
    assert row["logFC"] == pytest.approx(np.log2(100.001 / 0.001))
    assert row["direction"] == "hypermethylated"
    assert row["p_val"] < 0.01
    assert row["p_adj"] == pytest.approx(min(1.0, row["p_val"] * w1k.n_vars))
    hypo = markers[(markers["gene"] == "chr1_0_1000") & (markers["cluster_id"] == "B")].iloc[0]
    assert hypo["direction"] == "hypomethylated"
    assert "cluster_markers" in w1k.uns


def test_markers_for_selected_genes(w1k):
    markers = am.tl.find_cluster_markers(w1k, group_by="group", genes=["chr1_0_1000", "absent"], method="fdr_bh")
    assert set(markers["gene"]) == {"chr1_0_1000"}
    with pytest.raises(ValueError):
        am.tl.find_cluster_markers(w1k, group_by="group", genes=["absent"])
    with pytest.raises(KeyError):
        am.tl.find_cluster_markers(w1k, group_by="cluster_id")


def test_aggregate_matrix(w1k):
    means = am.tl.aggregate_matrix(w1k, group_by="group")
    assert list(means.columns) == ["A", "B"]
    assert means.loc["chr1_0_1000", "A"] == pytest.approx(100)
    assert means.loc["chr1_9000_10000", "B"] == pytest.approx(100)


def test_unlabelled_cells_are_left_out(w1k):
    w1k.obs["group"] = w1k.obs["group"].astype(object)
    w1k.obs.loc["cell00", "group"] = np.nan
    markers = am.tl.find_cluster_markers(w1k, group_by="group")
    assert set(markers["cluster_id"]) == {"A", "B"}
    assert len(markers) == 2 * w1k.n_vars
    row = markers[(markers["gene"] == "chr1_0_1000") & (markers["cluster_id"] == "A")].iloc[0]
    assert row["mean_1"] == pytest.approx(100)
    means = am.tl.aggregate_matrix(w1k, group_by="group")
    assert list(means.columns) == ["A", "B"]


def test_parallel_markers_match_serial(w1k):
    serial = am.tl.find_cluster_markers(w1k, group_by="group", threads=1)
    parallel = am.tl.find_cluster_markers(w1k, group_by="group", threads=2)
    pd.testing.assert_frame_equal(serial, parallel)


def test_smoothed_windows_by_hand(tiny_obj):
    unsmoothed = am.tl.calc_smoothed_windows(tiny_obj, step=100, smooth=1, group_by="group")
    sums = unsmoothed["sum_matrix"]
    assert list(sums.columns) == ["chr", "start", "end", "g1_c", "g1_t", "g2_c", "g2_t"]
    first = sums.iloc[0]
    assert (first["chr"], first["start"], first["end"]) == ("chr1", 0, 100)
    assert (first["g1_c"], first["g1_t"], first["g2_c"], first["g2_t"]) == (2, 2, 0, 2)

    smoothed = am.tl.calc_smoothed_windows(tiny_obj, step=100, smooth=3, group_by="group")
    sums = smoothed["sum_matrix"].set_index(["chr", "start"])
    assert sums.loc[("chr1", 0), "g1_c"] == 3
    assert sums.loc[("chr1", 100), "g1_c"] == 3
    assert sums.loc[("chr2", 0), "g2_c"] == 2
    pct = smoothed["pct_matrix"].set_index(["chr", "start"])
    assert pct.loc[("chr1", 0), "g1"] == pytest.approx(60.0)
    assert np.isnan(pct.loc[("chr2", 0), "g1"])


def test_smoothed_windows_subset_chromosomes(synthetic_obj):
    out = am.tl.calc_smoothed_windows(synthetic_obj, step=1000, smooth=3, group_by="group", chroms=["chr2"])
    assert set(out["sum_matrix"]["chr"]) == {"chr2"}
    assert list(out["pct_matrix"].columns) == ["chr", "start", "end", "A", "B"]


def _sum_matrix():
    return pd.DataFrame({
        "chr": ["chr1", "chr1", "chr1", "chr1", "chr2"],
        "start": [0, 500, 1000, 5000, 0],
        "end": [500, 1000, 1500, 5500, 500],
        "A_c": [20, 20, 10, 20, 1],
        "A_t": [0, 0, 10, 0, 0],
        "B_c": [0, 0, 10, 0, 0],
        "B_t": [20, 20, 10, 20, 1],
    })


def test_dmr_each_vs_all():
    dmr = am.tl.test_dmr(_sum_matrix())
    assert set(dmr["test"]) == {"A", "B"}
    # the chr2 window has too few sites
    assert (dmr["chr"] == "chr2").sum() == 0
    a = dmr[dmr["test"] == "A"].set_index("start")
    assert a.loc[0, "member_pct"] == 100 and a.loc[0, "rest_pct"] == 0
    assert a.loc[0, "p_val"] < 1e-9
    assert a.loc[1000, "p_val"] == pytest.approx(1.0)
    chisq = am.tl.test_dmr(_sum_matrix(), method="chisq")
    assert chisq.loc[chisq["start"] == 0, "p_val"].max() < 1e-6


def test_dmr_comparisons_table():
    comparisons = pd.DataFrame({"name": ["AvB"], "A": ["A"], "B": ["B"]})
    dmr = am.tl.test_dmr(_sum_matrix(), comparisons=comparisons)
    assert set(dmr["test"]) == {"AvB"}
    with pytest.raises(KeyError):
        am.tl.test_dmr(_sum_matrix(), comparisons=pd.DataFrame({"name": ["x"], "A": ["A"], "B": ["C"]}))
    with pytest.raises(ValueError):
        am.tl.test_dmr(_sum_matrix(), each_vs_all=False)


def test_filter_and_collapse_dmr(gtf):
    dmr = am.tl.filter_dmr(am.tl.test_dmr(_sum_matrix()), p_threshold=0.01, log_threshold=2)
    assert dmr["significant"].all()
    assert len(dmr) == 6
    assert set(dmr.loc[dmr["test"] == "A", "direction"]) == {"hypermethylated"}
    assert set(dmr.loc[dmr["test"] == "B", "direction"]) == {"hypomethylated"}

    everything = am.tl.filter_dmr(am.tl.test_dmr(_sum_matrix()), filter=False)
    assert len(everything) == 8 and (~everything["significant"]).sum() == 2

    ref = am.pp.make_ref(gtf)
    collapsed = am.tl.collapse_dmr(dmr, max_dist=0, ref=ref)
    a = collapsed[collapsed["test"] == "A"].reset_index(drop=True)
    assert a[["dmr_start", "dmr_end", "n_windows"]].values.tolist() == [[0, 1000, 2], [5000, 5500, 1]]
    assert a.loc[0, "dmr_length"] == 1000
    assert a.loc[0, "gene_names"] == "G1"
    assert a.loc[1, "gene_names"] == ""

    merged = am.tl.collapse_dmr(dmr, max_dist=5000)
    assert (merged["test"] == "A").sum() == 1
    long_only = am.tl.collapse_dmr(dmr, min_length=800)
    assert long_only["dmr_length"].min() >= 800


def test_go_enrichment():
    gene2go = {f"g{i}": {"T1"} for i in range(10)}
    gene2go.update({f"g{i}": {"T2"} for i in range(10, 20)})
    background = [f"g{i}" for i in range(25)]
    res = am.tl.go_enrichment([f"g{i}" for i in range(5)], background, gene2go)
    top = res.iloc[0]
    assert top["GO_ID"] == "T1"
    assert top["significant"] == 5 and top["annotated"] == 10
    assert top["expected"] == pytest.approx(2.5)
    assert top["p_val"] == pytest.approx(hypergeom.sf(4, 20, 10, 5))
    assert res.set_index("GO_ID").loc["T2", "p_val"] == pytest.approx(1.0)
    assert am.tl.go_enrichment(["g0"], background, gene2go, min_size=11).empty
    with pytest.raises(ValueError):
        am.tl.go_enrichment(["g0"], background, gene2go, ontology="BP")


def test_go_with_dag(tmp_path):
    obo = tmp_path / "go.obo"
    obo.write_text(OBO)
    dag = am.tl.load_go_dag(str(obo))
    gene2go = {f"g{i}": {"GO:0000002"} for i in range(3)}
    gene2go.update({f"g{i}": {"GO:0000001"} for i in range(3, 6)})
    gene2go["g6"] = {"GO:0000003"}
    res = am.tl.go_enrichment(["g0", "g1"], list(gene2go), gene2go, dag=dag, ontology="BP", min_size=1)
    res = res.set_index("GO_ID")
    assert set(res.index) == {"GO:0000001", "GO:0000002"}
    assert res.loc["GO:0000001", "annotated"] == 6
    assert res.loc["GO:0000002", "term"] == "child process"


def test_read_annotations(tmp_path):
    gaf = tmp_path / "test.gaf"
    gaf.write_text(
        "!gaf-version: 2.2\n"
        "DB\tID1\tSatb2\t\tGO:0000002\tREF\tIEA\t\tP\n"
        "DB\tID1\tSatb2\t\tGO:0000003\tREF\tIEA\t\tF\n"
        "DB\tID2\tGad1\tNOT\tGO:0000002\tREF\tIEA\t\tP\n"
    )
    assert am.tl.read_gaf(gaf) == {"Satb2": {"GO:0000002", "GO:0000003"}}
    assert am.tl.read_gaf(gaf, ontology="BP", upper=True) == {"SATB2": {"GO:0000002"}}
    table = tmp_path / "gene2go.tsv"
    table.write_text("Satb2\tGO:0000002,GO:0000003\nGad1\tGO:0000001\n")
    assert am.tl.read_gene2go(table)["Satb2"] == {"GO:0000002", "GO:0000003"}
