"""Integration tests against R/DESeq2. Skipped unless rpy2 and DESeq2 are installed."""

import pandas as pd
import pytest

from deseq2_walkthrough.deseq2 import RPY2_AVAILABLE, DESeq2Error, DESeq2Wrapper, run_deseq2
from deseq2_walkthrough.design import set_factor_levels
from conftest import make_counts, make_sample_info


pytestmark = pytest.mark.skipif(not RPY2_AVAILABLE, reason="rpy2 or R not available")

LEVELS = {'Status': ['virgin', 'pregnant', 'lactate']}
DESIGN = "~ CellType + Status"


@pytest.fixture(scope="module")
def wrapper():
    try:
        return DESeq2Wrapper()
    except DESeq2Error as e:
        pytest.skip(str(e))


@pytest.fixture(scope="module")
def inputs():
    # vst() subsamples 1000 genes, so keep more than that
    sample_info = set_factor_levels(make_sample_info(), LEVELS, ['CellType'])
    counts = make_counts(sample_info, n_genes=1500, seed=7)
    return counts, sample_info


@pytest.fixture(scope="module")
def fitted(wrapper, inputs):
    counts, sample_info = inputs
    dds = wrapper.create_deseq_dataset(counts, sample_info, DESIGN)
    return wrapper.run_deseq(dds)


class TestDESeq2Wrapper:
    """Tests for the rpy2 bridge."""

    def test_results_names(self, wrapper, fitted):
        assert wrapper.results_names(fitted) == [
            'Intercept',
            'CellType_luminal_vs_basal',
            'Status_pregnant_vs_virgin',
            'Status_lactate_vs_virgin',
        ]

    def test_named_results(self, wrapper, fitted, inputs):
        counts, _ = inputs

        res = wrapper.get_results(fitted, name='Status_lactate_vs_virgin', alpha=0.05)

        assert list(res.columns) == ['baseMean', 'log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']
        assert list(res.index) == list(counts.index)
        # the first 50 genes were simulated four-fold higher in lactate
        assert res['log2FoldChange'].iloc[:50].median() > 1

    def test_contrast_matches_name(self, wrapper, fitted):
        named = wrapper.get_results(fitted, name='Status_lactate_vs_virgin')
        contrast = wrapper.get_results(fitted, contrast=['Status', 'lactate', 'virgin'])

        pd.testing.assert_series_equal(named['log2FoldChange'], contrast['log2FoldChange'], check_exact=False)

    def test_unknown_name(self, wrapper, fitted):
        with pytest.raises(DESeq2Error):
            wrapper.get_results(fitted, name='Status_weaned_vs_virgin')

    def test_filter_threshold_carried(self, wrapper, fitted):
        res = wrapper.get_results(fitted, name='Status_lactate_vs_virgin', alpha=0.05)

        threshold = res.attrs['filter_threshold']
        filtered = res[res['padj'].isna() & res['pvalue'].notna()]
        assert threshold >= 0
        assert (filtered['baseMean'] < threshold).all()

    def test_lrt(self, wrapper, fitted, inputs):
        counts, _ = inputs

        lrt = wrapper.run_lrt(fitted, "~ CellType")
        res = wrapper.get_results(lrt)

        assert len(res) == len(counts)
        assert (res['stat'].dropna() >= 0).all()

    def test_size_factors(self, wrapper, fitted, inputs):
        _, sample_info = inputs

        size_factors = wrapper.get_size_factors(fitted)

        assert list(size_factors.index) == list(sample_info.index)
        assert (size_factors > 0).all()

    def test_normalized_counts(self, wrapper, fitted, inputs):
        counts, _ = inputs

        normalized = wrapper.get_normalized_counts(fitted)

        assert normalized.shape == counts.shape

    def test_pca(self, wrapper, fitted, inputs):
        _, sample_info = inputs

        vsd = wrapper.get_vst(fitted, blind=True)
        pca, percent_var = wrapper.get_pca_data(vsd, ['Status', 'CellType'])

        assert {'PC1', 'PC2', 'Status', 'CellType'} <= set(pca.columns)
        assert len(pca) == len(sample_info)
        assert len(percent_var) == 2
        assert 0 < percent_var[1] <= percent_var[0] <= 100

    def test_run_deseq2(self, wrapper, inputs):
        counts, sample_info = inputs

        outputs = run_deseq2(counts, sample_info, DESIGN, contrast=['Status', 'lactate', 'virgin'])

        assert set(outputs) == {'results', 'normalized_counts', 'dds'}
        assert list(outputs['results'].index) == list(counts.index)
        assert outputs['normalized_counts'].shape == counts.shape
        assert outputs['results']['log2FoldChange'].iloc[:50].median() > 1


class TestBundle:
    """Round trip through .RData."""

    def test_results_bundle(self, wrapper, fitted, inputs, tmp_path):
        from deseq2_walkthrough.bundle import load_bundle, save_results_bundle
        from deseq2_walkthrough.results import tidy_results

        _, sample_info = inputs
        res = tidy_results(wrapper.get_results(fitted, name='Status_lactate_vs_virgin'))
        path = tmp_path / "DE.RData"

        save_results_bundle(path, res, fitted, sample_info)
        loaded = load_bundle(path)

        assert set(loaded) == {'res', 'ddsObj', 'sampleinfo'}
        assert set(loaded['res'].index) == set(res['GeneID'])
        assert list(loaded['sampleinfo']['Status'].cat.categories) == ['virgin', 'pregnant', 'lactate']
        assert not isinstance(loaded['ddsObj'], pd.DataFrame)

    def test_preprocessed_bundle(self, wrapper, inputs, tmp_path):
        from deseq2_walkthrough.bundle import load_preprocessed, save_bundle

        counts, sample_info = inputs
        path = tmp_path / "preprocessing.RData"

        save_bundle(path, {'countdata': counts, 'sampleinfo': sample_info})
        loaded_counts, loaded_info = load_preprocessed(path)

        assert loaded_counts.shape == counts.shape
        assert list(loaded_counts.columns) == list(loaded_info.index)

    def test_preprocessed_bundle_from_r_table(self, wrapper, inputs, tmp_path):
        from deseq2_walkthrough.bundle import load_preprocessed, save_bundle

        counts, sample_info = inputs
        path = tmp_path / "preprocessing.RData"
        r_table = sample_info.reset_index()
        r_table.index = [str(i) for i in range(1, len(r_table) + 1)]

        save_bundle(path, {'countdata': counts, 'sampleinfo': r_table})
        _, loaded_info = load_preprocessed(path)

        assert list(loaded_info.index) == list(sample_info.index)

    def test_missing_bundle(self, wrapper, tmp_path):
        from deseq2_walkthrough.bundle import load_bundle

        with pytest.raises(FileNotFoundError):
            load_bundle(tmp_path / "absent.RData")
