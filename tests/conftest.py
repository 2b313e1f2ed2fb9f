import os

# numba's TBB threading layer (picked via pynndescent when the system
# libtbb is present) deadlocks at interpreter exit after fork-based
# worker pools; use the workqueue layer for the test process.
os.environ.setdefault("NUMBA_THREADING_LAYER", "workqueue")

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

import amethyst as am
from amethyst.io import write_cell_calls

GTF = """\
#!genome-build test
1\ttest\tgene\t5\t35\t.\t+\t.\tgene_id "ENSG1"; gene_name "G1"; gene_type "protein_coding";
1\ttest\texon\t5\t12\t.\t+\t.\tgene_id "ENSG1"; gene_name "G1"; gene_type "protein_coding";
1\ttest\texon\t25\t35\t.\t+\t.\tgene_id "ENSG1"; gene_name "G1"; gene_type "protein_coding";
1\ttest\tgene\t2000\t2600\t.\t-\t.\tgene_id "ENSG2"; gene_name "G2"; gene_biotype "lncRNA";
2\ttest\tgene\t100\t900\t.\t+\t.\tgene_id "ENSG3"; gene_type "protein_coding";
"""


@pytest.fixture(autouse=True)
def _quiet():
    am.settings.verbosity = 1
    am.settings.autoshow = False
    am.settings.autosave = False
    yield
    plt.close("all")


@pytest.fixture
def tiny_store(tmp_path):
    """Two cells with hand-checked calls."""
    path = tmp_path / "tiny.h5"
    x = pd.DataFrame({
        "chr": ["chr1", "chr1", "chr1", "chr1"],
        "pos": [30, 10, 20, 150],
        "c": [2, 1, 0, 1],
        "t": [1, 0, 1, 0],
    })
    y = pd.DataFrame({
        "chr": ["chr1", "chr1", "chr2", "chr2"],
        "pos": [50, 60, 5, 6],
        "c": [0, 0, 1, 1],
        "t": [1, 1, 0, 0],
    })
    write_cell_calls(path, "x", x)
    write_cell_calls(path, "y", y)
    return path


@pytest.fixture
def tiny_obj(tiny_store):
    obj = am.pp.create_object(tiny_store)
    am.pp.cell_stats(obj)
    am.pp.index_chrom(obj)
    am.pp.add_annot(obj, {"x": "g1", "y": "g2"}, "group")
    return obj


@pytest.fixture
def gtf(tmp_path):
    path = tmp_path / "genes.gtf"
    path.write_text(GTF)
    return path


@pytest.fixture
def synthetic_store(tmp_path):
    """
    Twelve cells in two groups of six.

    Group A is methylated on chr1 below 5 kb and unmethylated above, group B
    the reverse; chr2 alternates in both. Each cell misses a random fifth of
    the sites.
    """
    path = tmp_path / "cells.h5"
    groups = {}
    pos1 = np.arange(100, 10000, 100)
    pos2 = np.arange(100, 5000, 100)
    for i in range(12):
        barcode = f"cell{i:02d}"
        group = "A" if i < 6 else "B"
        groups[barcode] = group
        meth1 = (pos1 < 5000) if group == "A" else (pos1 >= 5000)
        meth2 = (pos2 // 100) % 2 == 0
        calls = pd.DataFrame({
            "chr": ["chr1"] * len(pos1) + ["chr2"] * len(pos2),
            "pos": np.r_[pos1, pos2],
            "c": np.r_[meth1, meth2].astype(int),
            "t": (~np.r_[meth1, meth2]).astype(int),
        })
        rng = np.random.default_rng(i)
        calls = calls[rng.random(len(calls)) > 0.2]
        write_cell_calls(path, barcode, calls)
    return path, groups


@pytest.fixture
def synthetic_obj(synthetic_store):
    path, groups = synthetic_store
    obj = am.pp.create_object(path)
    am.pp.cell_stats(obj)
    am.pp.index_chrom(obj)
    am.pp.add_annot(obj, groups, "group")
    return obj


@pytest.fixture
def w1k(synthetic_obj):
    return am.pp.make_windows(synthetic_obj, stepsize=1000, metric="percent", nmin=2)
