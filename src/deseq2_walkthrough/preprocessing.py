"""Read raw inputs and shape them into an aligned count matrix and sample table."""

import logging
from pathlib import Path
from typing import Sequence, Tuple, Union

import pandas as pd

from .validation import ValidationError


logger = logging.getLogger(__name__)

# featureCounts columns that describe the gene, not a sample
ANNOTATION_COLUMNS = ("Chr", "Start", "End", "Strand", "Length")


def read_sample_info(
    filepath: Union[str, Path],
    sample_column: str = "SampleName"
) -> pd.DataFrame:
    """
    Read the tab-separated sample information table.

    Args:
        filepath: Path to the sample table
        sample_column: Column holding sample IDs; becomes the index

    Returns:
        DataFrame with samples as rows, covariates as columns
    """
    df = pd.read_csv(filepath, sep="\t", dtype=str)
    df.columns = df.columns.str.strip()
    for column in df.columns:
        df[column] = df[column].str.strip()

    if sample_column not in df.columns:
        raise ValidationError(
            f"Sample column '{sample_column}' not found in {filepath}; columns are {list(df.columns)}"
        )

    df = df.set_index(sample_column)
    df.index.name = sample_column
    logger.info(f"Read sample information for {len(df)} samples from {filepath}")
    return df


def read_count_table(
    filepath: Union[str, Path],
    gene_column: str = "Geneid",
    comment: str = "#",
    strip_suffix: str = ".bam",
    annotation_columns: Sequence[str] = ANNOTATION_COLUMNS
) -> pd.DataFrame:
    """
    Read a tab-separated gene count table.

    Lines starting with ``comment`` before the header are skipped. Gene
    annotation columns are dropped and sample columns are reduced to the file
    stem (directory prefix and ``strip_suffix`` removed).

    Args:
        filepath: Path to the count table
        gene_column: Column holding gene IDs; the first column is used if absent
        comment: Prefix of header comment lines
        strip_suffix: Suffix removed from sample column names
        annotation_columns: Non-sample columns to drop

    Returns:
        Integer DataFrame with genes as rows, samples as columns
    """
    df = pd.read_csv(filepath, sep="\t", comment=comment)
    df.columns = df.columns.astype(str).str.strip()

    if gene_column not in df.columns:
        gene_column = df.columns[0]
    df = df.set_index(gene_column)
    df.index = df.index.astype(str).str.strip()

    df = df.drop(columns=[c for c in annotation_columns if c in df.columns])

    renamed = {}
    for column in df.columns:
        name = column.replace("\\", "/").rsplit("/", 1)[-1]
        if strip_suffix and name.endswith(strip_suffix):
            name = name[: -len(strip_suffix)]
        renamed[column] = name
    df = df.rename(columns=renamed)

    df = df.astype("int64")
    logger.info(f"Read counts for {df.shape[0]} genes x {df.shape[1]} samples from {filepath}")
    return df


def align_samples(
    counts: pd.DataFrame,
    sample_info: pd.DataFrame,
    file_column: str = "FileName"
) -> pd.DataFrame:
    """
    Reorder count columns to follow the sample order of ``sample_info``.

    Count columns may be named by sample ID or, when ``sample_info`` has a
    ``file_column``, by file name; the latter are renamed to sample IDs.

    Returns:
        Count matrix whose columns equal ``sample_info.index`` in order
    """
    samples = [str(s) for s in sample_info.index]
    columns = [str(c) for c in counts.columns]

    if not set(samples) <= set(columns) and file_column in sample_info.columns:
        file_to_sample = {}
        for sample, file_name in sample_info[file_column].items():
            stem = str(file_name).rsplit("/", 1)[-1]
            if stem.endswith(".bam"):
                stem = stem[:-4]
            file_to_sample[stem] = str(sample)
        if set(file_to_sample) & set(columns):
            counts = counts.rename(columns=file_to_sample)
            columns = [str(c) for c in counts.columns]

    missing = [s for s in samples if s not in columns]
    if missing:
        raise ValidationError(f"Samples missing from count matrix: {', '.join(missing)}")

    extra = [c for c in columns if c not in samples]
    if extra:
        logger.warning(f"Dropping count columns without sample information: {', '.join(extra)}")

    return counts.loc[:, samples]


def filter_low_counts(
    counts: pd.DataFrame,
    min_count: int = 5,
    min_samples: int = 2
) -> pd.DataFrame:
    """
    Keep genes with more than ``min_count`` reads in at least ``min_samples`` samples.
    """
    keep = (counts > min_count).sum(axis=1) >= min_samples
    filtered = counts.loc[keep]
    logger.info(f"Kept {filtered.shape[0]} of {counts.shape[0]} genes after low-count filtering")
    return filtered


def load_raw_inputs(
    sample_info_file: Union[str, Path],
    counts_file: Union[str, Path],
    min_count: int = 5,
    min_samples: int = 2
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Read, align and filter the raw inputs."""
    sample_info = read_sample_info(sample_info_file)
    counts = read_count_table(counts_file)
    counts = align_samples(counts, sample_info)
    counts = filter_low_counts(counts, min_count=min_count, min_samples=min_samples)
    return counts, sample_info
