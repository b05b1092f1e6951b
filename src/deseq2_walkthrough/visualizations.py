"""Plotly figures for the walkthrough: sample PCA, volcano and MA plots."""

from typing import List, Optional

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from .results import annotate_significance


COLOR_MAP = {
    'up': '#E74C3C',      # Red
    'down': '#3498DB',    # Blue
    'not_sig': '#95A5A6'  # Gray
}

# -log10 of the smallest normal double
PADJ_CEILING = -np.log10(np.finfo(float).tiny)


def _classify(results: pd.DataFrame, alpha: float, lfc_threshold: float) -> pd.Series:
    if 'direction' in results.columns:
        return results['direction']
    return annotate_significance(results, alpha, lfc_threshold)['direction']


def create_pca_plot(
    pca_data: pd.DataFrame,
    percent_var: List[float],
    color_by: str = 'Status',
    symbol_by: Optional[str] = 'CellType',
    title: str = "PCA of variance-stabilized counts"
) -> go.Figure:
    """
    Scatter samples on the first two principal components.

    Args:
        pca_data: Table returned by DESeq2Wrapper.get_pca_data (PC1, PC2, covariates)
        percent_var: Percent variance explained by PC1 and PC2
        color_by: Covariate used for colour
        symbol_by: Covariate used for marker symbol
        title: Plot title

    Returns:
        Plotly Figure object
    """
    plot_data = pca_data.copy()
    plot_data['sample'] = plot_data.index.astype(str)

    fig = px.scatter(
        plot_data,
        x='PC1',
        y='PC2',
        color=color_by,
        symbol=symbol_by,
        text='sample',
        title=title,
        labels={
            'PC1': f'PC1: {percent_var[0]:.0f}% variance',
            'PC2': f'PC2: {percent_var[1]:.0f}% variance'
        }
    )

    fig.update_traces(
        marker=dict(size=12, line=dict(width=1, color='white')),
        textposition='top center'
    )

    fig.update_layout(
        template='plotly_white',
        width=800,
        height=600,
        showlegend=True
    )

    return fig


def create_volcano_plot(
    results: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 0.0,
    title: str = "Volcano Plot"
) -> go.Figure:
    """
    Volcano plot of a tidy results table.

    Genes without an adjusted p-value (independently filtered) are omitted.
    """
    plot_data = results.dropna(subset=['padj', 'log2FoldChange']).copy()
    plot_data['-log10padj'] = -np.log10(plot_data['padj'])

    # padj of exactly 0 would plot at infinity
    finite_max = plot_data['-log10padj'].replace([np.inf], np.nan).max()
    if not np.isfinite(finite_max):
        finite_max = PADJ_CEILING
    plot_data['-log10padj'] = plot_data['-log10padj'].replace([np.inf], finite_max * 1.1)

    plot_data['category'] = _classify(plot_data, alpha, lfc_threshold)

    fig = go.Figure()
    for category, color in COLOR_MAP.items():
        subset = plot_data[plot_data['category'] == category]
        fig.add_trace(go.Scatter(
            x=subset['log2FoldChange'],
            y=subset['-log10padj'],
            mode='markers',
            name=category.replace('_', ' ').title(),
            marker=dict(color=color, size=5, opacity=0.6 if category == 'not_sig' else 0.8),
            text=subset['GeneID'],
            hovertemplate=(
                '<b>%{text}</b><br>' +
                'log2FC: %{x:.2f}<br>' +
                '-log10(padj): %{y:.2f}<br>' +
                '<extra></extra>'
            )
        ))

    fig.add_hline(
        y=-np.log10(alpha),
        line_dash="dash",
        line_color="gray",
        annotation_text=f"padj = {alpha}",
        annotation_position="right"
    )
    if lfc_threshold > 0:
        fig.add_vline(x=lfc_threshold, line_dash="dash", line_color="gray")
        fig.add_vline(x=-lfc_threshold, line_dash="dash", line_color="gray")

    fig.update_layout(
        title=title,
        xaxis_title="log<sub>2</sub> Fold Change",
        yaxis_title="-log<sub>10</sub> (adjusted p-value)",
        hovermode='closest',
        template='plotly_white',
        width=900,
        height=600
    )

    return fig


def create_ma_plot(
    results: pd.DataFrame,
    alpha: float = 0.05,
    title: str = "MA Plot"
) -> go.Figure:
    """Mean normalized count against log2 fold change."""
    plot_data = results.dropna(subset=['log2FoldChange', 'baseMean']).copy()
    plot_data = plot_data[plot_data['baseMean'] > 0]
    plot_data['category'] = _classify(plot_data, alpha, 0.0)

    fig = go.Figure()
    for category, color in COLOR_MAP.items():
        subset = plot_data[plot_data['category'] == category]
        fig.add_trace(go.Scatter(
            x=subset['baseMean'],
            y=subset['log2FoldChange'],
            mode='markers',
            name=category.replace('_', ' ').title(),
            marker=dict(color=color, size=4, opacity=0.5 if category == 'not_sig' else 0.7),
            text=subset['GeneID'],
            hovertemplate='<b>%{text}</b><br>baseMean: %{x:.1f}<br>log2FC: %{y:.2f}<extra></extra>'
        ))

    fig.add_hline(y=0, line_color="black", line_width=1)

    fig.update_layout(
        title=title,
        xaxis_title="Mean of normalized counts",
        yaxis_title="log<sub>2</sub> Fold Change",
        xaxis_type="log",
        hovermode='closest',
        template='plotly_white',
        width=900,
        height=600
    )

    return fig
