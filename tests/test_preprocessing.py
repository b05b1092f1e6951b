"""Unit tests for reading and shaping raw inputs."""

import pandas as pd
import pytest

from deseq2_walkthrough.preprocessing import (
    read_sample_info,
    read_count_table,
    align_samples,
    filter_low_counts,
    load_raw_inputs
)
from deseq2_walkthrough.validation import ValidationError


def write_sample_info(path, sample_info):
    sample_info.reset_index().to_csv(path, sep='\t', index=False)


def write_count_table(path, counts, sample_info):
    """Write counts the way featureCounts does: comment line, annotation columns, bam names."""
    table = counts.rename(columns=dict(zip(sample_info.index, sample_info['FileName'])))
    table = table.rename(columns=lambda c: f"/data/bams/{c}")
    table.insert(0, 'Length', 1000)
    table.insert(0, 'Chr', 'chr1')
    table.index.name = 'Geneid'
    with open(path, 'w') as f:
        f.write('# Program:featureCounts v1.4.5; Command:"featureCounts" ...\n')
        table.to_csv(f, sep='\t')


class TestReaders:
    """Tests for file reading functions."""

    def test_read_sample_info(self, tmp_path, sample_info):
        filepath = tmp_path / "SampleInfo.txt"
        write_sample_info(filepath, sample_info)

        df = read_sample_info(filepath)

        assert list(df.index) == list(sample_info.index)
        assert list(df.columns) == ['FileName', 'CellType', 'Status']

    def test_read_sample_info_missing_column(self, tmp_path, sample_info):
        filepath = tmp_path / "SampleInfo.txt"
        write_sample_info(filepath, sample_info)

        with pytest.raises(ValidationError, match="Sample column"):
            read_sample_info(filepath, sample_column="Sample")

    def test_read_count_table(self, tmp_path, counts, sample_info):
        filepath = tmp_path / "counts.txt"
        write_count_table(filepath, counts, sample_info)

        df = read_count_table(filepath)

        assert df.shape == counts.shape
        assert 'Length' not in df.columns
        assert 'Chr' not in df.columns
        assert df.columns[0] == 'MCL1.BV1_L002_R1'
        assert df.index[0] == 'Gene_00000'
        assert (df.dtypes == 'int64').all()
        assert df.iloc[5, 3] == counts.iloc[5, 3]


class TestAlignment:
    """Tests for sample ordering."""

    def test_reorders_to_metadata(self, counts, sample_info):
        shuffled = counts[list(reversed(counts.columns))]

        aligned = align_samples(shuffled, sample_info)

        assert list(aligned.columns) == list(sample_info.index)
        assert aligned.equals(counts)

    def test_renames_file_columns(self, counts, sample_info):
        stems = [name[:-4] for name in sample_info['FileName']]
        by_file = counts.set_axis(stems, axis=1)

        aligned = align_samples(by_file, sample_info)

        assert list(aligned.columns) == list(sample_info.index)

    def test_missing_sample(self, counts, sample_info):
        with pytest.raises(ValidationError, match="MCL1.LL2"):
            align_samples(counts.drop(columns=['MCL1.LL2']), sample_info)

    def test_extra_columns_dropped(self, counts, sample_info):
        extended = counts.assign(Unrelated=1)

        aligned = align_samples(extended, sample_info)

        assert 'Unrelated' not in aligned.columns


class TestFiltering:
    """Tests for low-count filtering."""

    def test_filtered_not_larger(self, counts):
        filtered = filter_low_counts(counts)

        assert filtered.shape[0] <= counts.shape[0]
        assert filtered.shape[1] == counts.shape[1]

    def test_removes_silent_genes(self, counts):
        filtered = filter_low_counts(counts, min_count=5, min_samples=2)

        assert not any(gene in filtered.index for gene in counts.index[-10:])
        assert ((filtered > 5).sum(axis=1) >= 2).all()

    def test_threshold_is_strict(self):
        counts = pd.DataFrame({'s1': [5, 6, 6], 's2': [5, 6, 0]}, index=['a', 'b', 'c'])

        filtered = filter_low_counts(counts, min_count=5, min_samples=2)

        assert list(filtered.index) == ['b']


class TestLoadRawInputs:
    """End-to-end read, align and filter."""

    def test_load_raw_inputs(self, tmp_path, counts, sample_info):
        info_path = tmp_path / "SampleInfo.txt"
        counts_path = tmp_path / "counts.txt"
        write_sample_info(info_path, sample_info)
        write_count_table(counts_path, counts, sample_info)

        loaded_counts, loaded_info = load_raw_inputs(info_path, counts_path)

        assert list(loaded_counts.columns) == list(loaded_info.index)
        assert loaded_counts.shape[0] <= counts.shape[0]
        assert loaded_counts.shape[0] == filter_low_counts(counts).shape[0]
