"""Shared fixtures: a small CellType x Status dataset."""

import numpy as np
import pandas as pd
import pytest


CELL_TYPES = ["basal", "luminal"]
STATUSES = ["virgin", "pregnant", "lactate"]


def make_sample_info(n_replicates=2):
    rows = []
    for cell_type in CELL_TYPES:
        for status in STATUSES:
            for rep in range(n_replicates):
                code = f"{cell_type[0].upper()}{status[0].upper()}{rep + 1}"
                rows.append({
                    "SampleName": f"MCL1.{code}",
                    "FileName": f"MCL1.{code}_L002_R1.bam",
                    "CellType": cell_type,
                    "Status": status,
                })
    return pd.DataFrame(rows).set_index("SampleName")


def make_counts(sample_info, n_genes=500, seed=42):
    rng = np.random.default_rng(seed)
    base = rng.lognormal(mean=4, sigma=1.5, size=n_genes)
    counts = np.empty((n_genes, len(sample_info)), dtype=int)
    for j, status in enumerate(sample_info["Status"]):
        mean = base.copy()
        if status == "lactate":
            mean[:50] *= 4
        counts[:, j] = rng.negative_binomial(n=10, p=10 / (10 + mean))
    # a handful of nearly silent genes for the low-count filter
    counts[-10:, :] = 0
    counts[-10:, 0] = 3
    return pd.DataFrame(
        counts,
        index=[f"Gene_{i:05d}" for i in range(n_genes)],
        columns=list(sample_info.index)
    )


@pytest.fixture
def sample_info():
    """Twelve samples, two per CellType/Status combination."""
    return make_sample_info()


@pytest.fixture
def counts(sample_info):
    """500 genes x 12 samples of negative binomial counts."""
    return make_counts(sample_info)


@pytest.fixture
def results_table():
    """A DESeq2-shaped results table indexed by gene ID."""
    res = pd.DataFrame({
        'baseMean': [100.0, 50.0, 2.0, 0.0, 300.0, 80.0],
        'log2FoldChange': [2.5, -1.5, 0.3, np.nan, 0.1, -3.0],
        'lfcSE': [0.3, 0.4, 1.2, np.nan, 0.2, 0.5],
        'stat': [8.3, -3.7, 0.25, np.nan, 0.5, -6.0],
        'pvalue': [1e-16, 2e-4, 0.8, np.nan, 0.6, np.nan],
        'padj': [1e-14, 1e-3, np.nan, np.nan, 0.7, np.nan],
    }, index=pd.Index(['GeneA', 'GeneB', 'GeneC', 'GeneD', 'GeneE', 'GeneF'], name='GeneID'))
    return res
