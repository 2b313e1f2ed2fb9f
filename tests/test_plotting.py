import numpy as np
import pandas as pd
import pytest

import amethyst as am


@pytest.fixture
def embedded(w1k):
    rng = np.random.default_rng(0)
    w1k.obsm["X_umap"] = rng.normal(size=(w1k.n_obs, 2))
    w1k.obs["cluster_id"] = pd.Categorical(["1"] * 6 + ["2"] * 6)
    return w1k


def test_palettes(embedded):
    assert len(am.pl.palette(5)) == 5
    assert len(am.pl.palette(50)) == 50
    assert am.pl.zeileis_palette(30)[28] == am.pl.zeileis_palette()[0]
    lut = am.pl.get_colors(embedded, "cluster_id", {"1": "red"})
    assert lut == {"1": "red", "2": "#bfbfbf"}
    assert embedded.uns["cluster_id_colors"] == ["red", "#bfbfbf"]
    assert am.pl.get_colors(embedded, "cluster_id") == lut


def test_dim_plots(embedded, tmp_path):
    axes = am.pl.dim_feature(embedded, color=["cluster_id", "cov"], show=False)
    assert len(axes) == 2
    assert axes[0].get_title() == "cluster_id"
    axes = am.pl.dim_m(embedded, ["chr1_0_1000", "chr2_0_1000"], show=False)
    assert len(axes) == 2
    with pytest.raises(KeyError):
        am.pl.dim_m(embedded, ["absent"], show=False)
    with pytest.raises(KeyError):
        am.pl.dim_feature(embedded, basis="tsne", show=False)

    am.pl.dim_feature(embedded, color="group", label_on_data=True, save=str(tmp_path / "figs" / "umap.png"))
    assert (tmp_path / "figs" / "umap.png").exists()


def test_cell_level_plots(embedded):
    axes = am.pl.qc_hist(embedded, thresholds={"cov": (10, None)}, show=False)
    assert len(axes) == 2
    ax = am.pl.grouped_value_boxplot(embedded, "group", "mcg_pct", show=False)
    assert ax.get_ylabel() == "mcg_pct"
    ax = am.pl.stacked_plot(embedded, groupby="cluster_id", colorby="group", normalize=True,
                            orientation="horizontal", show=False)
    assert ax.get_xlabel() == "Proportion"


def test_result_plots(embedded):
    markers = am.tl.find_cluster_markers(embedded, group_by="group")
    ax = am.pl.volcano(markers, show=False)
    assert ax.get_xlabel() == "Log2 Fold Change"
    grid = am.pl.marker_heatmap(embedded, group_by="group", n_genes=3, standard_scale=0, show=False)
    assert grid.data.shape[1] == 2
    with pytest.raises(ValueError):
        am.pl.marker_heatmap(embedded, genes=["absent"], group_by="group", show=False)

    gene2go = {f"g{i}": {"T1"} for i in range(10)}
    res = am.tl.go_enrichment(["g0", "g1"], [f"g{i}" for i in range(10)], gene2go)
    ax = am.pl.go_barplot(res, show=False)
    assert len(ax.patches) == 1


def test_histogram(tiny_obj, gtf):
    ref = am.pp.make_ref(gtf)
    smoothed = am.tl.calc_smoothed_windows(tiny_obj, step=10, smooth=1, group_by="group")
    axes = am.pl.histogram(smoothed, "G1", ref, flank=100, show=False)
    assert len(axes) == 3
    assert axes[0].get_ylabel() == "g1"
    with pytest.raises(KeyError):
        am.pl.histogram(smoothed, "G1", ref, groups=["g3"], show=False)
    with pytest.raises(KeyError):
        am.pl.histogram(smoothed, "absent", ref, show=False)


def test_set_figure_params(tmp_path):
    figdir, fmt = am.settings.figdir, am.settings.file_format_figs
    try:
        am.pl.set_figure_params(figdir=str(tmp_path), format="svg", rc={"lines.linewidth": 2})
        assert am.settings.file_format_figs == "svg"
        assert am.settings.figdir == str(tmp_path)
        with pytest.raises(KeyError):
            am.pl.set_figure_params(rc={"not.a.param": 1})
    finally:
        am.settings.figdir, am.settings.file_format_figs = figdir, fmt
