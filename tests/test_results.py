"""Unit tests for reshaping and summarising results tables."""

import numpy as np

from deseq2_walkthrough.results import (
    FILTER_THRESHOLD,
    annotate_significance,
    independently_filtered,
    significant_genes,
    significant_overlap,
    summarize_results,
    tidy_results,
    top_genes,
)


class TestTidyResults:
    """Tests for gene column and ordering."""

    def test_gene_column_first(self, results_table):
        res = tidy_results(results_table)

        assert res.columns[0] == 'GeneID'
        assert set(res['GeneID']) == set(results_table.index)

    def test_sorted_by_padj_nan_last(self, results_table):
        res = tidy_results(results_table)

        assert res['GeneID'].tolist()[:3] == ['GeneA', 'GeneB', 'GeneE']
        assert res['padj'].iloc[3:].isna().all()
        # ties keep input order
        assert res['GeneID'].tolist()[3:] == ['GeneC', 'GeneD', 'GeneF']

    def test_idempotent(self, results_table):
        once = tidy_results(results_table)

        assert tidy_results(once).equals(once)

    def test_top_genes(self, results_table):
        top = top_genes(results_table, n=2)

        assert top['GeneID'].tolist() == ['GeneA', 'GeneB']


class TestSignificance:
    """Tests for significance flags."""

    def test_direction(self, results_table):
        res = annotate_significance(tidy_results(results_table), alpha=0.05)
        direction = dict(zip(res['GeneID'], res['direction']))

        assert direction['GeneA'] == 'up'
        assert direction['GeneB'] == 'down'
        assert direction['GeneE'] == 'not_sig'
        assert direction['GeneC'] == 'not_sig'
        assert res['significant'].sum() == 2

    def test_lfc_threshold(self, results_table):
        res = annotate_significance(tidy_results(results_table), alpha=0.05, lfc_threshold=2.0)

        assert res.loc[res['significant'], 'GeneID'].tolist() == ['GeneA']

    def test_significant_genes(self, results_table):
        assert significant_genes(results_table, alpha=0.05) == ['GeneA', 'GeneB']
        assert significant_genes(results_table, alpha=1e-10) == ['GeneA']


class TestSummary:
    """Tests for summary() style tallies."""

    def test_counts(self, results_table):
        summary = summarize_results(results_table, alpha=0.05)

        assert summary.n_nonzero == 5
        assert summary.n_up == 1
        assert summary.n_down == 1
        assert summary.n_outliers == 1
        assert summary.n_low_counts == 1
        assert summary.low_count_threshold == 2.0

    def test_low_counts_match_filtered(self, results_table):
        summary = summarize_results(results_table)

        assert summary.n_low_counts == len(independently_filtered(results_table))
        assert independently_filtered(results_table).index.tolist() == ['GeneC']

    def test_no_filtered_genes(self, results_table):
        res = results_table.copy()
        res.loc['GeneC', 'padj'] = 0.9

        summary = summarize_results(res)

        assert summary.n_low_counts == 0
        assert summary.low_count_threshold == 0.0

    def test_describe(self, results_table):
        text = summarize_results(results_table).describe()

        assert 'out of 5 genes' in text
        assert 'LFC > 0 (up)       : 1, 20.0%' in text
        assert '(mean count <= 2.00)' in text

    def test_reported_filter_threshold(self, results_table):
        res = results_table.copy()
        res.loc['GeneE', ['pvalue', 'padj']] = [0.6, np.nan]
        res.loc['GeneC', 'baseMean'] = 1.2
        res.loc['GeneE', 'baseMean'] = 2.4
        res.attrs[FILTER_THRESHOLD] = 2.61

        summary = summarize_results(annotate_significance(tidy_results(res)))

        assert summary.n_low_counts == 2
        assert summary.low_count_threshold == 2.61
        assert not summary.threshold_estimated
        assert '(mean count < 2.61)' in summary.describe()

    def test_threshold_estimated_without_attrs(self, results_table):
        summary = summarize_results(results_table)

        assert summary.threshold_estimated
        assert summary.low_count_threshold == 2.0


class TestOverlap:
    """Tests for comparing two tables."""

    def test_overlap(self, results_table):
        other = results_table.copy()
        other.loc['GeneA', 'padj'] = np.nan
        other.loc['GeneE', 'padj'] = 0.01

        assert significant_overlap(results_table, other) == ['GeneB']
