"""Design formulas, factor levels and treatment-coded design matrices.

Formulas use the R/Wilkinson subset the walkthrough needs: ``+`` joins
terms, ``A:B`` is an interaction and ``A * B`` expands to ``A + B + A:B``.
Column names of :func:`model_matrix` follow R's ``model.matrix`` so they
line up with DESeq2's coefficient names.
"""

import itertools
import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .validation import ValidationError


logger = logging.getLogger(__name__)

INTERCEPT = "(Intercept)"


def design_terms(formula: str) -> List[str]:
    """
    Expand a design formula into R term labels.

    >>> design_terms("~ CellType * Status")
    ['CellType', 'Status', 'CellType:Status']
    """
    text = formula.strip()
    if not text.startswith("~"):
        raise ValidationError(f"Design formula must start with '~': {formula!r}")
    text = text[1:].strip()
    if not text:
        raise ValidationError(f"Design formula has no terms: {formula!r}")
    if "-" in text:
        raise ValidationError(f"Term removal is not supported in design formulas: {formula!r}")

    terms = []
    for part in text.split("+"):
        part = part.strip()
        if not part or part == "1":
            continue
        if "*" in part:
            names = [n.strip() for n in part.split("*")]
            for size in range(1, len(names) + 1):
                for combo in itertools.combinations(names, size):
                    terms.append(":".join(combo))
        else:
            terms.append(":".join(n.strip() for n in part.split(":")))

    for term in terms:
        for name in term.split(":"):
            if not name.isidentifier():
                raise ValidationError(f"Invalid variable name '{name}' in design formula {formula!r}")

    unique = list(dict.fromkeys(terms))
    return sorted(unique, key=lambda t: t.count(":"))


def design_variables(formula: str) -> List[str]:
    """Metadata columns referenced by a formula, in order of appearance."""
    variables = []
    for term in design_terms(formula):
        for name in term.split(":"):
            if name not in variables:
                variables.append(name)
    return variables


def reduced_of(formula: str) -> str:
    """Additive formula left after dropping the interaction terms."""
    main_effects = [t for t in design_terms(formula) if ":" not in t]
    return "~ " + " + ".join(main_effects)


def set_factor_levels(
    sample_info: pd.DataFrame,
    levels: Dict[str, Sequence[str]],
    variables: Optional[Sequence[str]] = None
) -> pd.DataFrame:
    """
    Convert design covariates to categoricals with a fixed level order.

    Columns named in ``levels`` take that order; the first level is the base
    level of the model. Remaining ``variables`` holding text become
    categoricals with alphabetically sorted levels, as R's ``factor()`` does.

    Returns:
        A copy of ``sample_info`` with categorical design columns
    """
    sample_info = sample_info.copy()

    for variable, order in levels.items():
        if variable not in sample_info.columns:
            raise ValidationError(f"Cannot set levels: '{variable}' not found in sample information")
        order = [str(level) for level in order]
        values = sample_info[variable].astype(str)
        unknown = sorted(set(values) - set(order))
        if unknown:
            raise ValidationError(
                f"Values of '{variable}' not among declared levels {order}: {', '.join(unknown)}"
            )
        sample_info[variable] = pd.Categorical(values, categories=order)
        logger.info(f"Set levels of {variable}: {' < '.join(order)} (base level '{order[0]}')")

    for variable in variables or []:
        if variable in levels or variable not in sample_info.columns:
            continue
        column = sample_info[variable]
        if isinstance(column.dtype, pd.CategoricalDtype) or pd.api.types.is_numeric_dtype(column):
            continue
        values = column.astype(str)
        sample_info[variable] = pd.Categorical(values, categories=sorted(values.unique()))

    return sample_info


def _term_columns(term: str, sample_info: pd.DataFrame) -> Dict[str, np.ndarray]:
    parts = []
    for name in term.split(":"):
        if name not in sample_info.columns:
            raise ValidationError(f"Design variable '{name}' not found in sample information")
        column = sample_info[name]
        if isinstance(column.dtype, pd.CategoricalDtype):
            parts.append([
                (f"{name}{level}", (column == level).to_numpy(dtype=float))
                for level in column.cat.categories[1:]
            ])
        elif pd.api.types.is_numeric_dtype(column):
            parts.append([(name, column.to_numpy(dtype=float))])
        else:
            raise ValidationError(f"Design variable '{name}' must be categorical or numeric; call set_factor_levels first")

    # R lets the first factor of an interaction vary fastest
    columns = {}
    for combo in itertools.product(*reversed(parts)):
        combo = combo[::-1]
        label = ":".join(label for label, _ in combo)
        values = np.ones(len(sample_info))
        for _, column in combo:
            values = values * column
        columns[label] = values
    return columns


def model_matrix(formula: str, sample_info: pd.DataFrame) -> pd.DataFrame:
    """
    Build the treatment-coded design matrix of a formula.

    Args:
        formula: Design formula, e.g. ``"~ CellType + Status"``
        sample_info: Sample metadata with categorical design columns

    Returns:
        DataFrame with samples as rows and model coefficients as columns
    """
    columns = {INTERCEPT: np.ones(len(sample_info))}
    for term in design_terms(formula):
        columns.update(_term_columns(term, sample_info))

    matrix = pd.DataFrame(columns, index=sample_info.index)
    return matrix.astype(int) if np.array_equal(matrix, matrix.round()) else matrix


def check_full_rank(matrix: pd.DataFrame):
    """Raise ValidationError when the design matrix columns are linearly dependent."""
    rank = np.linalg.matrix_rank(matrix.to_numpy(dtype=float))
    if rank < matrix.shape[1]:
        raise ValidationError(
            f"Design matrix is rank deficient (rank {rank} < {matrix.shape[1]} coefficients). "
            "Some coefficients cannot be estimated; check for levels without samples "
            "or covariates that are confounded with each other."
        )
