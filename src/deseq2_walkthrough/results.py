"""Reshape, annotate and summarise DESeq2 results tables for display."""

import logging
from typing import List

import numpy as np
import pandas as pd
from pydantic import BaseModel


logger = logging.getLogger(__name__)

GENE_COLUMN = 'GeneID'
FILTER_THRESHOLD = 'filter_threshold'  # DataFrame.attrs key, from metadata(res)$filterThreshold
RESULT_COLUMNS = [GENE_COLUMN, 'baseMean', 'log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']


class ResultsSummary(BaseModel):
    """Tallies reported by DESeq2's summary() for one results table."""
    alpha: float
    n_nonzero: int
    n_up: int
    n_down: int
    n_outliers: int
    n_low_counts: int
    low_count_threshold: float
    threshold_estimated: bool = False

    def describe(self) -> str:
        def pct(n):
            return 100.0 * n / self.n_nonzero if self.n_nonzero else 0.0

        if self.threshold_estimated:
            # largest filtered mean, so the bound is inclusive
            bound = f"(mean count <= {self.low_count_threshold:.2f})"
        else:
            bound = f"(mean count < {self.low_count_threshold:.2f})"

        return (
            f"out of {self.n_nonzero} genes with nonzero total read count\n"
            f"adjusted p-value < {self.alpha}\n"
            f"LFC > 0 (up)       : {self.n_up}, {pct(self.n_up):.1f}%\n"
            f"LFC < 0 (down)     : {self.n_down}, {pct(self.n_down):.1f}%\n"
            f"outliers [1]       : {self.n_outliers}, {pct(self.n_outliers):.1f}%\n"
            f"low counts [2]     : {self.n_low_counts}, {pct(self.n_low_counts):.1f}%\n"
            f"{bound}"
        )


def tidy_results(results: pd.DataFrame) -> pd.DataFrame:
    """
    Move gene IDs into a column and sort by adjusted p-value, missing values last.
    """
    res = results.copy()
    if GENE_COLUMN not in res.columns:
        res.index.name = GENE_COLUMN
        res = res.reset_index()

    extra = [c for c in res.columns if c not in RESULT_COLUMNS]
    ordered = [c for c in RESULT_COLUMNS if c in res.columns] + extra
    res = res[ordered]

    res = res.sort_values('padj', na_position='last', kind='mergesort')
    res = res.reset_index(drop=True)
    res.attrs = dict(results.attrs)
    return res


def annotate_significance(
    results: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 0.0
) -> pd.DataFrame:
    """Add ``significant`` and ``direction`` (up / down / not_sig) columns."""
    res = results.copy()
    below = res['padj'] < alpha  # NaN compares False

    up = below & (res['log2FoldChange'] > lfc_threshold)
    down = below & (res['log2FoldChange'] < -lfc_threshold)

    res['significant'] = up | down
    res['direction'] = 'not_sig'
    res.loc[up, 'direction'] = 'up'
    res.loc[down, 'direction'] = 'down'
    res.attrs = dict(results.attrs)

    logger.info(f"Found {int(up.sum())} up-regulated and {int(down.sum())} down-regulated genes")
    return res


def top_genes(results: pd.DataFrame, n: int = 20) -> pd.DataFrame:
    """The ``n`` genes with the smallest adjusted p-values."""
    return tidy_results(results).head(n)


def independently_filtered(results: pd.DataFrame) -> pd.DataFrame:
    """Genes tested but left out of multiple-testing correction for low mean count."""
    mask = results['padj'].isna() & results['pvalue'].notna()
    return results.loc[mask]


def summarize_results(results: pd.DataFrame, alpha: float = 0.05) -> ResultsSummary:
    """
    Tally a results table the way DESeq2's summary() does.

    Outliers are genes with a count but no p-value; low-count genes are those
    removed by independent filtering. The threshold reported is DESeq2's
    ``filterThreshold`` when the table carries it in ``attrs``, otherwise
    the largest baseMean among the filtered genes.
    """
    nonzero = results['baseMean'] > 0
    below = results['padj'] < alpha

    outliers = nonzero & results['pvalue'].isna()
    low = independently_filtered(results)

    threshold = results.attrs.get(FILTER_THRESHOLD)
    estimated = threshold is None or not np.isfinite(threshold)
    if estimated:
        threshold = float(low['baseMean'].max()) if len(low) else 0.0

    return ResultsSummary(
        alpha=alpha,
        n_nonzero=int(nonzero.sum()),
        n_up=int((below & (results['log2FoldChange'] > 0)).sum()),
        n_down=int((below & (results['log2FoldChange'] < 0)).sum()),
        n_outliers=int(outliers.sum()),
        n_low_counts=len(low),
        low_count_threshold=float(threshold) if np.isfinite(threshold) else 0.0,
        threshold_estimated=estimated
    )


def significant_genes(results: pd.DataFrame, alpha: float = 0.05) -> List[str]:
    """Gene IDs with adjusted p-value below ``alpha``, most significant first."""
    res = tidy_results(results)
    return res.loc[res['padj'] < alpha, GENE_COLUMN].astype(str).tolist()


def significant_overlap(first: pd.DataFrame, second: pd.DataFrame, alpha: float = 0.05) -> List[str]:
    """Significant genes shared by two results tables, ordered as in ``first``."""
    shared = set(significant_genes(second, alpha))
    return [gene for gene in significant_genes(first, alpha) if gene in shared]
