"""Read and write R ``.RData`` bundles of analysis objects."""

import logging
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import pandas as pd

from .deseq2 import DESeq2Error, RPY2_AVAILABLE

if RPY2_AVAILABLE:
    import rpy2.robjects as ro
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.conversion import localconverter
    from rpy2.rinterface_lib.embedded import RRuntimeError


logger = logging.getLogger(__name__)

COUNTS_KEY = "countdata"
SAMPLE_INFO_KEY = "sampleinfo"
RESULTS_KEY = "res"
MODEL_KEY = "ddsObj"


def _require_rpy2():
    if not RPY2_AVAILABLE:
        raise DESeq2Error("rpy2 is not installed. Please install it with: pip install rpy2")


def _to_pandas(r_obj) -> Any:
    """Convert data.frames and matrices to pandas; leave anything else as an R object."""
    is_frame = bool(ro.r['is.data.frame'](r_obj)[0])
    is_matrix = bool(ro.r['is.matrix'](r_obj)[0])
    if not (is_frame or is_matrix):
        return r_obj

    r_df = ro.r['as.data.frame'](r_obj)
    row_names = [str(name) for name in ro.r['rownames'](r_df)]
    with localconverter(ro.default_converter + pandas2ri.converter):
        df = ro.conversion.rpy2py(r_df)
    df.index = row_names
    return df


def load_bundle(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load every object stored in an ``.RData`` file.

    Args:
        path: Bundle file

    Returns:
        Mapping of object name to pandas DataFrame (data.frames and matrices)
        or R object (anything else)
    """
    _require_rpy2()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Bundle not found: {path}")

    env = ro.r['new.env']()
    try:
        names = [str(n) for n in ro.r['load'](str(path), envir=env)]
    except RRuntimeError as e:
        raise DESeq2Error(f"Failed to load bundle {path}: {e}")

    objects = {name: _to_pandas(env[name]) for name in names}
    logger.info(f"Loaded {', '.join(names)} from {path}")
    return objects


def restore_sample_index(sample_info: pd.DataFrame, sample_column: str = "SampleName") -> pd.DataFrame:
    """
    Index a sample table by ``sample_column`` when its row names are R's automatic ones.

    Tables made in R with ``read_tsv`` or ``read.delim`` carry row names
    "1".."n" and keep the sample IDs in a column.
    """
    automatic = [str(i) for i in range(1, len(sample_info) + 1)]
    if sample_column not in sample_info.columns or [str(i) for i in sample_info.index] != automatic:
        return sample_info

    sample_info = sample_info.copy()
    sample_info[sample_column] = sample_info[sample_column].astype(str).str.strip()
    return sample_info.set_index(sample_column)


def load_preprocessed(path: Union[str, Path]) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Count matrix and sample table from a pre-processing bundle."""
    objects = load_bundle(path)
    missing = [key for key in (COUNTS_KEY, SAMPLE_INFO_KEY) if key not in objects]
    if missing:
        raise KeyError(f"Bundle {path} lacks {', '.join(missing)}; found {', '.join(objects)}")

    counts = objects[COUNTS_KEY].astype('int64')
    sample_info = restore_sample_index(objects[SAMPLE_INFO_KEY])
    return counts, sample_info


def save_bundle(path: Union[str, Path], objects: Dict[str, Any]):
    """
    Save named objects to an ``.RData`` file.

    pandas DataFrames are stored as R data.frames with their index as row
    names; categorical columns become factors. R objects are stored unchanged.
    """
    _require_rpy2()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    env = ro.r['new.env']()
    for name, obj in objects.items():
        if isinstance(obj, pd.DataFrame):
            with localconverter(ro.default_converter + pandas2ri.converter):
                obj = ro.conversion.py2rpy(obj)
        env[name] = obj

    try:
        ro.r['save'](list=ro.StrVector(list(objects)), file=str(path), envir=env)
    except RRuntimeError as e:
        raise DESeq2Error(f"Failed to save bundle {path}: {e}")
    logger.info(f"Saved {', '.join(objects)} to {path}")


def save_results_bundle(path: Union[str, Path], results: pd.DataFrame, dds, sample_info: pd.DataFrame):
    """Save the primary results table, fitted model and sample table."""
    if 'GeneID' in results.columns:
        results = results.set_index('GeneID')
    save_bundle(path, {
        RESULTS_KEY: results,
        MODEL_KEY: dds,
        SAMPLE_INFO_KEY: sample_info,
    })
