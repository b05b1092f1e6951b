"""The walkthrough: load data, fit the models, extract contrasts, compare, save.

Every statistical step is a DESeq2 call made through :class:`DESeq2Wrapper`;
this module only fixes their order and reshapes what comes back.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pandas as pd

from .bundle import load_preprocessed, save_results_bundle
from .config import Config, get_config
from .deseq2 import DESeq2Wrapper
from .design import (
    check_full_rank,
    design_variables,
    model_matrix,
    reduced_of,
    set_factor_levels,
)
from .preprocessing import align_samples, load_raw_inputs
from .results import (
    annotate_significance,
    significant_overlap,
    summarize_results,
    tidy_results,
)
from .validation import validate_analysis_inputs
from .visualizations import create_ma_plot, create_pca_plot, create_volcano_plot


logger = logging.getLogger(__name__)


def load_inputs(config: Config) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Count matrix and sample table for the analysis.

    The pre-processing bundle is used when it exists; otherwise the raw
    tab-separated files are read and low-count genes filtered out.
    """
    paths = config.paths
    if paths.preprocessed_bundle is not None and Path(paths.preprocessed_bundle).exists():
        logger.info(f"Loading pre-processed data from {paths.preprocessed_bundle}")
        return load_preprocessed(paths.preprocessed_bundle)

    logger.info(f"No pre-processing bundle found; reading {paths.sample_info_file} and {paths.counts_file}")
    return load_raw_inputs(
        paths.sample_info_file,
        paths.counts_file,
        min_count=config.defaults.min_count,
        min_samples=config.defaults.min_samples
    )


def prepare_inputs(
    counts: pd.DataFrame,
    sample_info: pd.DataFrame,
    config: Config
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Align sample order, apply factor levels and validate."""
    design = config.design
    formulas = [design.full_design, design.reduced_design]
    if design.interaction_design:
        formulas.append(design.interaction_design)

    variables = []
    for formula in formulas:
        variables.extend(v for v in design_variables(formula) if v not in variables)

    counts = align_samples(counts, sample_info)
    sample_info = set_factor_levels(sample_info, design.factor_levels, variables)

    validation = validate_analysis_inputs(counts, sample_info, variables)
    for warning in validation.warnings:
        logger.warning(warning.message)
    validation.raise_for_errors()

    return counts, sample_info


def fit_model(wrapper: DESeq2Wrapper, counts: pd.DataFrame, sample_info: pd.DataFrame, formula: str):
    """Build the design object for ``formula`` and fit it with Wald tests."""
    matrix = model_matrix(formula, sample_info)
    logger.info(f"Design matrix for {formula}: coefficients {list(matrix.columns)}")
    check_full_rank(matrix)

    dds = wrapper.create_deseq_dataset(counts, sample_info, formula)
    return wrapper.run_deseq(dds), matrix


def extract_contrasts(wrapper: DESeq2Wrapper, dds, config: Config) -> Dict[str, pd.DataFrame]:
    """Default result plus every configured contrast, tidied and annotated."""
    alpha = config.defaults.alpha
    lfc_threshold = config.defaults.lfc_threshold

    tables = {}
    raw = wrapper.get_results(dds, alpha=alpha, lfc_threshold=lfc_threshold)
    tables['default'] = annotate_significance(tidy_results(raw), alpha, lfc_threshold)

    for comparison in config.design.contrasts:
        raw = wrapper.get_results(
            dds,
            name=comparison.name,
            contrast=comparison.as_list(),
            alpha=alpha,
            lfc_threshold=lfc_threshold
        )
        tables[comparison.label] = annotate_significance(tidy_results(raw), alpha, lfc_threshold)

    return tables


def _write_outputs(outputs: Dict[str, Any], config: Config):
    results_dir = Path(config.paths.results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)

    for label, table in outputs['contrasts'].items():
        table.to_csv(results_dir / f"{label}.tsv", sep='\t', index=False)
    outputs['lrt_results'].to_csv(results_dir / "LRT_full_vs_reduced.tsv", sep='\t', index=False)
    if outputs.get('interaction_results') is not None:
        outputs['interaction_results'].to_csv(results_dir / "LRT_interaction.tsv", sep='\t', index=False)

    outputs['pca_figure'].write_html(str(results_dir / "pca.html"))

    label = config.design.primary_contrast
    volcano = create_volcano_plot(
        outputs['primary'],
        alpha=config.defaults.alpha,
        lfc_threshold=config.defaults.lfc_threshold,
        title=f"Volcano plot: {label}"
    )
    volcano.write_html(str(results_dir / f"{label}_volcano.html"))
    ma = create_ma_plot(outputs['primary'], alpha=config.defaults.alpha, title=f"MA plot: {label}")
    ma.write_html(str(results_dir / f"{label}_MA.html"))
    logger.info(f"Wrote results tables and figures to {results_dir}")


def run_walkthrough(
    config: Optional[Config] = None,
    wrapper: Optional[DESeq2Wrapper] = None,
    counts: Optional[pd.DataFrame] = None,
    sample_info: Optional[pd.DataFrame] = None
) -> Dict[str, Any]:
    """
    Run the full walkthrough.

    Args:
        config: Configuration; the process-wide one when omitted
        wrapper: DESeq2 bridge; created when omitted
        counts: Count matrix to use instead of loading from disk
        sample_info: Sample table to use instead of loading from disk

    Returns:
        Dictionary containing:
            - counts, sample_info: the aligned inputs
            - design_matrix: design matrix of the full model
            - dds: fitted full model
            - results_names: coefficient names of the full model
            - contrasts: results table per contrast label (plus 'default')
            - summaries: ResultsSummary per contrast label
            - primary: results table saved to the output bundle
            - lrt_results: full vs reduced likelihood-ratio test
            - lrt_wald_overlap: genes significant in both the LRT and primary contrast
            - interaction_results: interaction LRT table, or None
            - pca_data, percent_var, pca_figure: sample PCA on vst counts
    """
    config = config or get_config()
    design = config.design
    alpha = config.defaults.alpha

    if counts is None or sample_info is None:
        counts, sample_info = load_inputs(config)
    counts, sample_info = prepare_inputs(counts, sample_info, config)
    logger.info(f"Analysing {counts.shape[0]} genes across {counts.shape[1]} samples")

    wrapper = wrapper or DESeq2Wrapper()

    dds, matrix = fit_model(wrapper, counts, sample_info, design.full_design)
    names = wrapper.results_names(dds)
    logger.info(f"Fitted coefficients: {', '.join(names)}")

    contrasts = extract_contrasts(wrapper, dds, config)
    summaries = {label: summarize_results(table, alpha) for label, table in contrasts.items()}
    for label, summary in summaries.items():
        logger.info(f"{label}: {summary.n_up} up, {summary.n_down} down, {summary.n_low_counts} low-count genes filtered")

    dds_lrt = wrapper.run_lrt(dds, design.reduced_design)
    lrt_raw = wrapper.get_results(dds_lrt, alpha=alpha)
    lrt_results = tidy_results(lrt_raw)
    primary = contrasts[design.primary_contrast]
    overlap = significant_overlap(lrt_results, primary, alpha)
    logger.info(f"{len(overlap)} genes significant in both the LRT and {design.primary_contrast}")

    interaction_results = None
    if design.interaction_design:
        dds_int, _ = fit_model(wrapper, counts, sample_info, design.interaction_design)
        dds_int_lrt = wrapper.run_lrt(dds_int, reduced_of(design.interaction_design))
        interaction_results = tidy_results(wrapper.get_results(dds_int_lrt, alpha=alpha))

    vsd = wrapper.get_vst(dds, blind=config.defaults.blind_vst)
    pca_data, percent_var = wrapper.get_pca_data(vsd, design.pca_groups)
    pca_figure = create_pca_plot(
        pca_data,
        percent_var,
        color_by=design.pca_groups[0],
        symbol_by=design.pca_groups[1] if len(design.pca_groups) > 1 else None
    )

    save_results_bundle(config.paths.output_bundle, primary, dds, sample_info)

    outputs = {
        'counts': counts,
        'sample_info': sample_info,
        'design_matrix': matrix,
        'dds': dds,
        'results_names': names,
        'contrasts': contrasts,
        'summaries': summaries,
        'primary': primary,
        'lrt_results': lrt_results,
        'lrt_wald_overlap': overlap,
        'interaction_results': interaction_results,
        'pca_data': pca_data,
        'percent_var': percent_var,
        'pca_figure': pca_figure,
    }

    if config.write_tables:
        _write_outputs(outputs, config)

    return outputs
