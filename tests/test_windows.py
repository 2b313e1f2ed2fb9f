import numpy as np
import pandas as pd
import pytest

import amethyst as am
from amethyst.io import write_cell_calls
from amethyst.preprocessing._index import _chrom_blocks
from amethyst.preprocessing._windows import _read_regions


def test_create_object_from_store(tiny_obj, tiny_store):
    assert list(tiny_obj.obs_names) == ["x", "y"]
    assert (tiny_obj.obs["h5path"] == str(tiny_store)).all()
    assert tiny_obj.obs.loc["x", "mcg_pct"] == pytest.approx(60.0)
    assert tiny_obj.obs.loc["y", "cov"] == 4


def test_create_object_from_mapping(tiny_store):
    obj = am.pp.create_object(pd.DataFrame({"path": [str(tiny_store)]}, index=["y"]))
    assert list(obj.obs_names) == ["y"]
    with pytest.raises(KeyError):
        am.pp.create_object(pd.DataFrame({"file": [str(tiny_store)]}, index=["y"]))


def test_add_cell_info_and_filter(tiny_obj):
    am.pp.add_cell_info(tiny_obj, pd.DataFrame({"batch": ["b1"]}, index=["x"]))
    assert tiny_obj.obs.loc["x", "batch"] == "b1"
    assert pd.isna(tiny_obj.obs.loc["y", "batch"])
    with pytest.raises(ValueError):
        am.pp.add_cell_info(tiny_obj, pd.DataFrame({"batch": ["b1"]}, index=["z"]))
    kept = am.pp.filter_cells(tiny_obj, min_mcg=55)
    assert list(kept.obs_names) == ["x"]
    assert tiny_obj.n_obs == 2


def test_index_blocks(tiny_obj):
    index = tiny_obj.uns["index"]["chr_cg"]
    y = index[index["cell"] == "y"].set_index("chr")
    assert y.loc["chr1", "start"] == 0 and y.loc["chr1", "count"] == 2
    assert y.loc["chr2", "start"] == 2 and y.loc["chr2", "count"] == 2
    with pytest.raises(KeyError):
        am.pp.get_index(tiny_obj, "CH")


def test_cells_without_context_calls_are_skipped(tiny_store):
    ch = pd.DataFrame({"chr": ["chr1", "chr1", "chr1"], "pos": [10, 20, 40], "c": [1, 0, 1], "t": [0, 1, 0]})
    write_cell_calls(tiny_store, "x", ch, context="CH")
    obj = am.pp.create_object(tiny_store)
    index = am.pp.index_chrom(obj, context="CH")
    assert set(index["cell"]) == {"x"}
    am.pp.cell_stats(obj, context="CH")
    assert obj.obs.loc["x", "mch_pct"] == pytest.approx(200 / 3)
    assert np.isnan(obj.obs.loc["y", "mch_pct"])
    w = am.pp.make_windows(obj, stepsize=100, context="CH", nmin=1)
    assert list(w.var_names) == ["chr1_0_100"]
    assert w.X[0, 0] == pytest.approx(200 / 3)
    assert np.isnan(w.X[1, 0])


def test_cell_tables_are_not_modified(tiny_obj):
    idx = pd.CategoricalIndex(["x", "y"])
    info = pd.DataFrame({"batch": ["b1", "b2"]}, index=idx)
    annot = pd.Series(["p", "q"], index=idx)
    am.pp.add_cell_info(tiny_obj, info)
    am.pp.add_annot(tiny_obj, annot, "plate")
    assert isinstance(info.index, pd.CategoricalIndex)
    assert isinstance(annot.index, pd.CategoricalIndex)
    assert tiny_obj.obs["plate"].tolist() == ["p", "q"]


def test_parallel_windows_match_serial(synthetic_obj, w1k):
    index = synthetic_obj.uns["index"]["chr_cg"]
    parallel_index = am.pp.index_chrom(synthetic_obj, threads=2, key="parallel")
    pd.testing.assert_frame_equal(index, parallel_index)
    w = am.pp.make_windows(synthetic_obj, stepsize=1000, metric="percent", nmin=2, threads=2)
    assert list(w.var_names) == list(w1k.var_names)
    np.testing.assert_array_equal(w.X, w1k.X)
    bed = pd.DataFrame({"chr": ["chr1", "chr2"], "start": [0, 100], "end": [4999, 2000]})
    serial = am.pp.collect_window_counts(synthetic_obj, regions=_read_regions(bed), threads=1)
    parallel = am.pp.collect_window_counts(synthetic_obj, regions=_read_regions(bed), threads=2)
    assert serial.keys() == parallel.keys()
    for barcode in serial:
        pd.testing.assert_frame_equal(serial[barcode], parallel[barcode])


def test_split_chromosome_block_is_an_error():
    with pytest.raises(ValueError):
        _chrom_blocks(np.array([b"chr1", b"chr2", b"chr1"]))


def test_percent_windows(tiny_obj):
    w = am.pp.make_windows(tiny_obj, stepsize=100, nmin=2)
    assert list(w.var_names) == ["chr1_0_100", "chr2_0_100"]
    np.testing.assert_allclose(w.X[0], [50.0, np.nan])
    np.testing.assert_allclose(w.X[1], [0.0, 100.0])
    assert w.var["covered_cell"].tolist() == [2, 1]
    assert w.var.loc["chr1_0_100", "var"] == pytest.approx(625.0)
    assert np.isnan(w.var.loc["chr2_0_100", "var"])
    assert w.uns["windows"]["stepsize"] == 100


def test_nmin_keeps_single_site_windows(tiny_obj):
    w = am.pp.make_windows(tiny_obj, stepsize=100, nmin=1)
    assert list(w.var_names) == ["chr1_0_100", "chr1_100_200", "chr2_0_100"]
    assert w[["x"], "chr1_100_200"].X[0, 0] == pytest.approx(100.0)


def test_score_and_ratio(tiny_obj):
    score = am.pp.make_windows(tiny_obj, stepsize=100, metric="score")
    assert score[["x"], "chr1_0_100"].X[0, 0] == pytest.approx(1 / 3)
    assert score[["y"], "chr1_0_100"].X[0, 0] == pytest.approx(-1.0)
    ratio = am.pp.make_windows(tiny_obj, stepsize=100, metric="ratio")
    assert ratio[["x"], "chr1_0_100"].X[0, 0] == pytest.approx(50 / 60)


def test_ratio_needs_global_level(tiny_store):
    obj = am.pp.create_object(tiny_store)
    am.pp.index_chrom(obj)
    with pytest.raises(KeyError):
        am.pp.make_windows(obj, stepsize=100, metric="ratio")


def test_window_arguments(tiny_obj):
    with pytest.raises(ValueError):
        am.pp.make_windows(tiny_obj)
    with pytest.raises(ValueError):
        am.pp.make_windows(tiny_obj, stepsize=100, genes=["G1"])
    with pytest.raises(ValueError):
        am.pp.make_windows(tiny_obj, stepsize=100, metric="mean")


def test_bed_regions_keep_order(tiny_obj):
    bed = pd.DataFrame({"chr": ["chr1", "chr1"], "start": [40, 10], "end": [160, 30], "name": ["r2", "r1"]})
    w = am.pp.make_windows(tiny_obj, bed=bed, nmin=1)
    assert list(w.var_names) == ["r2", "r1"]
    # closed intervals: 10, 20 and 30 all fall in r1
    np.testing.assert_allclose(w[:, "r1"].X[:, 0], [50.0, np.nan])
    np.testing.assert_allclose(w[:, "r2"].X[:, 0], [100.0, 0.0])


def test_bed_file(tiny_obj, tmp_path):
    path = tmp_path / "regions.bed"
    path.write_text("chr1\t0\t200\nchr2\t0\t10\n")
    w = am.pp.make_windows(tiny_obj, bed=str(path), nmin=1)
    assert list(w.var_names) == ["chr1_0_200", "chr2_0_10"]


def test_reference_and_gene_windows(tiny_obj, gtf):
    ref = am.pp.make_ref(gtf)
    assert set(ref["seqid"]) == {"chr1", "chr2"}
    assert ref.loc[ref["gene_id"] == "ENSG2", "gene_type"].iloc[0] == "lncRNA"
    assert ref.loc[ref["gene_id"] == "ENSG3", "gene_name"].iloc[0] == "ENSG3"

    regions = am.pp.get_gene_regions(ref, ["G2", "G1"], promoter=100)
    assert regions["name"].tolist() == ["G2", "G1"]
    assert regions.set_index("name").loc["G2", "end"] == 2700
    assert regions.set_index("name").loc["G1", "start"] == 1

    w = am.pp.make_windows(tiny_obj, genes=["G1"], ref=ref, nmin=1)
    assert list(w.var_names) == ["G1"]
    np.testing.assert_allclose(w.X[:, 0], [50.0, np.nan])

    coding = am.pp.make_ref(gtf, gene_type="protein_coding")
    assert "G2" not in set(coding["gene_name"])


def test_filter_and_select_features(tiny_obj):
    w = am.pp.make_windows(tiny_obj, stepsize=100, nmin=1)
    mask = am.pp.filter_features(w, min_cells=2, inplace=False)
    assert mask.tolist() == [True, False, False]
    am.pp.filter_features(w, chrom_exclude=["chr2"])
    assert list(w.var_names) == ["chr1_0_100", "chr1_100_200"]
    am.pp.select_features(w, n_features=1)
    assert w.var["feature_select"].tolist() == [True, False]


def test_fill_na():
    X = np.array([[1.0, np.nan], [3.0, np.nan], [np.nan, np.nan]])
    np.testing.assert_allclose(am.pp.fill_na(X), [[1, 0], [3, 0], [0, 0]])
    np.testing.assert_allclose(am.pp.fill_na(X, "mean"), [[1, 0], [3, 0], [2, 0]])
