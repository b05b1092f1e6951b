"""DESeq2 walkthrough - differential expression of RNA-seq counts with DESeq2."""

__version__ = "0.1.0"

from .config import get_config, set_config, Config
from .preprocessing import read_sample_info, read_count_table, align_samples, filter_low_counts
from .validation import ValidationError, validate_analysis_inputs
from .design import design_terms, model_matrix, set_factor_levels
from .deseq2 import DESeq2Error, DESeq2Wrapper, run_deseq2
from .results import tidy_results, top_genes, summarize_results
from .workflow import run_walkthrough

__all__ = [
    'get_config',
    'set_config',
    'Config',
    'read_sample_info',
    'read_count_table',
    'align_samples',
    'filter_low_counts',
    'ValidationError',
    'validate_analysis_inputs',
    'design_terms',
    'model_matrix',
    'set_factor_levels',
    'DESeq2Error',
    'DESeq2Wrapper',
    'run_deseq2',
    'tidy_results',
    'top_genes',
    'summarize_results',
    'run_walkthrough'
]
