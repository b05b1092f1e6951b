"""Data validation for count matrices and sample metadata."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


class ValidationWarning(BaseModel):
    """Warning message from validation."""
    message: str
    severity: str = Field(default="warning")  # warning, info


class ValidationResult(BaseModel):
    """Result of data validation."""
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[ValidationWarning] = Field(default_factory=list)
    summary: Dict[str, Any] = Field(default_factory=dict)

    def raise_for_errors(self):
        """Raise ValidationError carrying every collected error."""
        if not self.valid:
            raise ValidationError("; ".join(self.errors))


class CountMatrixSchema(BaseModel):
    """Schema for count matrix validation."""
    n_genes: int
    n_samples: int
    sample_ids: List[str]
    has_negative: bool
    has_non_integer: bool
    has_missing: bool
    library_sizes: Dict[str, float]


class MetadataSchema(BaseModel):
    """Schema for metadata validation."""
    n_samples: int
    sample_ids: List[str]
    columns: List[str]
    design_variables: List[str] = Field(default_factory=list)
    levels: Dict[str, List[str]] = Field(default_factory=dict)
    samples_per_level: Dict[str, Dict[str, int]] = Field(default_factory=dict)


def validate_count_matrix(counts: pd.DataFrame) -> Tuple[ValidationResult, Optional[CountMatrixSchema]]:
    """
    Validate count matrix.

    Args:
        counts: Count matrix DataFrame (genes x samples)

    Returns:
        Tuple of (ValidationResult, CountMatrixSchema)
    """
    errors = []
    warnings = []

    if counts.empty:
        errors.append("Count matrix is empty")
        return ValidationResult(valid=False, errors=errors), None

    n_genes, n_samples = counts.shape

    has_negative = bool((counts < 0).any().any())
    if has_negative:
        errors.append("Count matrix contains negative values")

    has_missing = bool(counts.isna().any().any())
    if has_missing:
        n_missing = int(counts.isna().sum().sum())
        errors.append(f"Count matrix contains {n_missing} missing values")

    values = counts.to_numpy(dtype=float)
    has_non_integer = not np.allclose(values, np.round(values), equal_nan=True)
    if has_non_integer:
        errors.append("Count matrix contains non-integer values; DESeq2 requires raw integer counts")

    library_sizes = {str(k): float(v) for k, v in counts.sum(axis=0).items()}

    for sample, size in library_sizes.items():
        if size == 0:
            errors.append(f"Sample '{sample}' has no reads")
        elif size < 1e6:
            warnings.append(ValidationWarning(
                message=f"Sample '{sample}' has low library size: {size:,.0f} reads",
                severity="warning"
            ))

    if counts.index.duplicated().any():
        n_duplicates = int(counts.index.duplicated().sum())
        errors.append(f"Count matrix contains {n_duplicates} duplicate gene IDs")

    if counts.columns.duplicated().any():
        n_duplicates = int(counts.columns.duplicated().sum())
        errors.append(f"Count matrix contains {n_duplicates} duplicate sample IDs")

    schema = CountMatrixSchema(
        n_genes=n_genes,
        n_samples=n_samples,
        sample_ids=[str(s) for s in counts.columns],
        has_negative=has_negative,
        has_non_integer=has_non_integer,
        has_missing=has_missing,
        library_sizes=library_sizes
    )

    summary = {
        "n_genes": n_genes,
        "n_samples": n_samples,
        "total_counts": float(np.nansum(values)),
        "median_library_size": float(np.median(list(library_sizes.values())))
    }

    result = ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        summary=summary
    )

    return result, schema


def validate_metadata(
    metadata: pd.DataFrame,
    count_samples: Optional[Sequence[str]] = None,
    design_variables: Sequence[str] = ()
) -> Tuple[ValidationResult, Optional[MetadataSchema]]:
    """
    Validate sample metadata against the variables a design formula uses.

    Args:
        metadata: Metadata DataFrame (samples x covariates)
        count_samples: Sample IDs from the count matrix (for matching check)
        design_variables: Columns referenced by the design formula

    Returns:
        Tuple of (ValidationResult, MetadataSchema)
    """
    errors = []
    warnings = []

    if metadata.empty:
        errors.append("Metadata is empty")
        return ValidationResult(valid=False, errors=errors), None

    sample_ids = [str(s) for s in metadata.index]
    columns = [str(c) for c in metadata.columns]
    levels = {}
    samples_per_level = {}

    for variable in design_variables:
        if variable not in metadata.columns:
            errors.append(f"Design variable '{variable}' not found in metadata")
            continue

        column = metadata[variable]
        if column.isna().any():
            errors.append(f"Design variable '{variable}' contains missing values")

        if isinstance(column.dtype, pd.CategoricalDtype):
            observed = [str(c) for c in column.cat.categories]
        else:
            observed = sorted(str(v) for v in column.dropna().unique())
        levels[variable] = observed

        counts_per_level = {str(k): int(v) for k, v in column.value_counts().items()}
        samples_per_level[variable] = counts_per_level

        if column.nunique(dropna=True) < 2:
            errors.append(f"Design variable '{variable}' has fewer than two levels")

        for level in observed:
            n = counts_per_level.get(level, 0)
            if n == 0:
                errors.append(f"Level '{level}' of '{variable}' has no samples")
            elif n < 2:
                warnings.append(ValidationWarning(
                    message=f"Level '{level}' of '{variable}' has a single sample",
                    severity="warning"
                ))

    if count_samples is not None:
        count_set = set(str(s) for s in count_samples)
        meta_set = set(sample_ids)

        missing_in_meta = count_set - meta_set
        missing_in_counts = meta_set - count_set

        if missing_in_meta:
            errors.append(
                f"Samples in count matrix but not in metadata: {', '.join(sorted(missing_in_meta))}"
            )
        if missing_in_counts:
            errors.append(
                f"Samples in metadata but not in count matrix: {', '.join(sorted(missing_in_counts))}"
            )

    if metadata.index.duplicated().any():
        n_duplicates = int(metadata.index.duplicated().sum())
        errors.append(f"Metadata contains {n_duplicates} duplicate sample IDs")

    schema = MetadataSchema(
        n_samples=len(metadata),
        sample_ids=sample_ids,
        columns=columns,
        design_variables=list(design_variables),
        levels=levels,
        samples_per_level=samples_per_level
    )

    summary = {
        "n_samples": len(metadata),
        "columns": columns,
        "levels": levels
    }

    result = ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        summary=summary
    )

    return result, schema


def validate_sample_order(counts: pd.DataFrame, metadata: pd.DataFrame) -> ValidationResult:
    """Check that count columns list the samples in metadata row order."""
    count_order = [str(s) for s in counts.columns]
    meta_order = [str(s) for s in metadata.index]

    errors = []
    if count_order != meta_order:
        errors.append(
            "Count matrix columns are not in metadata sample order "
            f"(counts: {count_order}, metadata: {meta_order})"
        )
    return ValidationResult(valid=not errors, errors=errors)


def validate_analysis_inputs(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design_variables: Sequence[str]
) -> ValidationResult:
    """
    Validate complete analysis inputs.

    Args:
        counts: Count matrix
        metadata: Sample metadata
        design_variables: Columns referenced by the design formula

    Returns:
        ValidationResult with combined validation from both inputs
    """
    all_errors = []
    all_warnings = []

    counts_result, _ = validate_count_matrix(counts)
    all_errors.extend(counts_result.errors)
    all_warnings.extend(counts_result.warnings)

    meta_result, _ = validate_metadata(
        metadata,
        count_samples=list(counts.columns),
        design_variables=design_variables
    )
    all_errors.extend(meta_result.errors)
    all_warnings.extend(meta_result.warnings)

    if not meta_result.errors:
        order_result = validate_sample_order(counts, metadata)
        all_errors.extend(order_result.errors)

    summary = {
        "counts": counts_result.summary,
        "metadata": meta_result.summary
    }

    return ValidationResult(
        valid=len(all_errors) == 0,
        errors=all_errors,
        warnings=all_warnings,
        summary=summary
    )
