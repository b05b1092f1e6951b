"""DESeq2 wrapper using rpy2 for differential expression analysis."""

import logging
import math
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .results import FILTER_THRESHOLD

try:
    import rpy2.robjects as ro
    from rpy2.robjects import pandas2ri
    from rpy2.robjects.packages import importr
    from rpy2.robjects.conversion import localconverter
    from rpy2.rinterface_lib.embedded import RRuntimeError
    RPY2_AVAILABLE = True
except (ImportError, OSError, RuntimeError, ValueError) as e:
    # rpy2 raises OSError, RuntimeError or ValueError when no R installation can be found
    RPY2_AVAILABLE = False
    logging.warning(f"rpy2 not available ({e}). DESeq2 analysis will not work.")


logger = logging.getLogger(__name__)

RESULT_COLUMNS = ['baseMean', 'log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']

# NA when results() skipped independent filtering
FILTER_THRESHOLD_R = """
function(res) {
    threshold <- S4Vectors::metadata(res)$filterThreshold
    if (is.null(threshold)) NA_real_ else unname(threshold)
}
"""


class DESeq2Error(Exception):
    """Exception for DESeq2-related errors."""
    pass


def _explain(action: str, error: Exception) -> DESeq2Error:
    message = str(error)
    if "full rank" in message.lower() or "rank deficient" in message.lower():
        return DESeq2Error(
            f"{action} failed: the design matrix is not full rank. This usually means:\n"
            "  - A factor level has no samples\n"
            "  - Two covariates are perfectly confounded\n"
            "  - A covariate takes the same value in every sample\n"
            f"R said: {message}"
        )
    return DESeq2Error(f"{action} failed: {message}")


class DESeq2Wrapper:
    """Wrapper for DESeq2 differential expression analysis."""

    def __init__(self):
        """Initialize DESeq2 wrapper and check R environment."""
        if not RPY2_AVAILABLE:
            raise DESeq2Error("rpy2 is not installed. Please install it with: pip install rpy2")

        self._check_r_packages()
        self._load_r_packages()

    def _check_r_packages(self):
        """Check if required R packages are installed."""
        required_packages = ['DESeq2']

        utils = importr('utils')
        base = importr('base')

        installed = set(base.rownames(utils.installed_packages()))
        missing = [pkg for pkg in required_packages if pkg not in installed]

        if missing:
            quoted = ', '.join(f"'{p}'" for p in missing)
            raise DESeq2Error(
                f"Required R packages not found: {', '.join(missing)}\n"
                "Please install them in R using:\n"
                "  if (!require('BiocManager', quietly = TRUE))\n"
                "      install.packages('BiocManager')\n"
                f"  BiocManager::install(c({quoted}))"
            )

    def _load_r_packages(self):
        """Load DESeq2 and attach it so S4 generics resolve from the search path."""
        try:
            self.deseq2 = importr('DESeq2')
            self.base = importr('base')
            ro.r('suppressPackageStartupMessages(library(DESeq2))')
            self._filter_threshold = ro.r(FILTER_THRESHOLD_R)
            logger.info("Successfully loaded DESeq2 and dependencies")
        except RRuntimeError as e:
            raise DESeq2Error(f"Failed to load R packages: {e}")

    def _convert_to_r_matrix(self, df: pd.DataFrame):
        """Convert pandas DataFrame to R integer matrix."""
        with localconverter(ro.default_converter + pandas2ri.converter):
            r_df = ro.conversion.py2rpy(df.astype('int32'))

        r_matrix = self.base.as_matrix(r_df)
        r_matrix.rownames = ro.StrVector([str(i) for i in df.index])
        r_matrix.colnames = ro.StrVector([str(c) for c in df.columns])
        return r_matrix

    def _convert_to_r_dataframe(self, df: pd.DataFrame):
        """Convert pandas DataFrame to R data.frame; categoricals become factors."""
        with localconverter(ro.default_converter + pandas2ri.converter):
            return ro.conversion.py2rpy(df)

    def _convert_from_r(self, r_obj) -> pd.DataFrame:
        """Convert an R data.frame-coercible object to pandas, keeping row names."""
        r_df = self.base.as_data_frame(r_obj)
        row_names = [str(name) for name in self.base.rownames(r_df)]
        with localconverter(ro.default_converter + pandas2ri.converter):
            pd_df = ro.conversion.rpy2py(r_df)
        pd_df.index = row_names
        return pd_df

    def create_deseq_dataset(
        self,
        counts: pd.DataFrame,
        metadata: pd.DataFrame,
        design: str
    ):
        """
        Create DESeqDataSet object.

        Args:
            counts: Count matrix (genes x samples)
            metadata: Sample metadata; design columns should be categoricals
            design: Design formula (e.g., "~ CellType + Status")

        Returns:
            DESeqDataSet R object
        """
        logger.info(f"Creating DESeqDataSet with design: {design}")

        # Ensure sample order matches
        metadata = metadata.loc[[str(c) for c in counts.columns]]

        count_matrix = self._convert_to_r_matrix(counts)
        col_data = self._convert_to_r_dataframe(metadata)

        try:
            dds = self.deseq2.DESeqDataSetFromMatrix(
                countData=count_matrix,
                colData=col_data,
                design=ro.Formula(design)
            )
        except RRuntimeError as e:
            raise _explain("Creating DESeqDataSet", e)

        logger.info(f"Created DESeqDataSet with {counts.shape[0]} genes and {counts.shape[1]} samples")
        return dds

    def run_deseq(self, dds):
        """
        Fit the model: size factors, dispersions, then Wald tests.

        Args:
            dds: DESeqDataSet object

        Returns:
            Fitted DESeqDataSet
        """
        logger.info("Running DESeq2 (Wald test)...")
        try:
            dds = self.deseq2.DESeq(dds)
        except RRuntimeError as e:
            raise _explain("DESeq2 analysis", e)
        logger.info("DESeq2 analysis completed successfully")
        return dds

    def run_lrt(self, dds, reduced: str):
        """
        Likelihood-ratio test of the object's design against a reduced design.

        Args:
            dds: DESeqDataSet carrying the full design
            reduced: Nested design formula, e.g. "~ CellType"

        Returns:
            DESeqDataSet fitted with test="LRT"
        """
        logger.info(f"Running DESeq2 likelihood-ratio test against reduced design: {reduced}")
        try:
            dds = self.deseq2.DESeq(dds, test="LRT", reduced=ro.Formula(reduced))
        except RRuntimeError as e:
            raise _explain("Likelihood-ratio test", e)
        logger.info("Likelihood-ratio test completed successfully")
        return dds

    def results_names(self, dds) -> List[str]:
        """Names of the fitted model coefficients."""
        return [str(name) for name in self.deseq2.resultsNames(dds)]

    def get_results(
        self,
        dds,
        name: Optional[str] = None,
        contrast: Optional[List[str]] = None,
        alpha: float = 0.05,
        lfc_threshold: float = 0
    ) -> pd.DataFrame:
        """
        Extract results from DESeq analysis.

        Args:
            dds: DESeqDataSet with results
            name: Coefficient name from resultsNames()
            contrast: Contrast specification [factor, numerator, denominator]
            alpha: FDR target used for independent filtering
            lfc_threshold: Log2 fold change threshold

        Returns:
            DataFrame with one row per gene, indexed by gene ID. The mean-count
            threshold used by independent filtering is in
            ``attrs['filter_threshold']`` when filtering took place.
        """
        kwargs = {'alpha': alpha, 'lfcThreshold': lfc_threshold}
        if name is not None:
            kwargs['name'] = name
        elif contrast is not None:
            kwargs['contrast'] = ro.StrVector(contrast)

        described = name or (contrast and ' '.join(contrast)) or 'last coefficient'
        logger.info(f"Extracting results for {described} (alpha={alpha}, lfcThreshold={lfc_threshold})")

        try:
            res = self.deseq2.results(dds, **kwargs)
        except RRuntimeError as e:
            raise _explain(f"Extracting results for {described}", e)

        res_df = self._convert_from_r(res)
        res_df = res_df[RESULT_COLUMNS]
        res_df.index.name = 'GeneID'

        threshold = float(self._filter_threshold(res)[0])
        if not math.isnan(threshold):
            res_df.attrs[FILTER_THRESHOLD] = threshold
        return res_df

    def get_size_factors(self, dds) -> pd.Series:
        """Per-sample size factors of a fitted object."""
        size_factors = ro.r['sizeFactors'](dds)
        samples = [str(s) for s in self.base.names(size_factors)]
        return pd.Series(list(size_factors), index=samples, name='sizeFactor')

    def get_normalized_counts(self, dds) -> pd.DataFrame:
        """
        Get normalized counts from DESeqDataSet.

        Args:
            dds: DESeqDataSet object with size factors

        Returns:
            DataFrame with normalized counts
        """
        try:
            norm_counts = ro.r['counts'](dds, normalized=True)
        except RRuntimeError as e:
            raise DESeq2Error(f"Failed to get normalized counts: {e}")
        return self._convert_from_r(norm_counts)

    def get_vst(self, dds, blind: bool = True):
        """Variance-stabilizing transformation; returns the R DESeqTransform."""
        logger.info(f"Computing variance-stabilizing transformation (blind={blind})")
        try:
            return self.deseq2.vst(dds, blind=blind)
        except RRuntimeError as e:
            raise DESeq2Error(f"Failed to compute VST: {e}")

    def get_pca_data(self, vsd, intgroup: List[str]) -> Tuple[pd.DataFrame, List[float]]:
        """
        Sample coordinates on the first two principal components.

        Args:
            vsd: Variance-stabilized data from get_vst()
            intgroup: Metadata columns carried into the returned table

        Returns:
            Tuple of (PC1/PC2 coordinates per sample, percent variance per PC)
        """
        try:
            pca = ro.r['plotPCA'](vsd, intgroup=ro.StrVector(intgroup), returnData=True)
        except RRuntimeError as e:
            raise DESeq2Error(f"Failed to compute PCA: {e}")

        percent_var = [float(v) * 100 for v in ro.r['attr'](pca, 'percentVar')]
        pca_df = self._convert_from_r(pca)
        return pca_df, percent_var


def run_deseq2(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design: str,
    contrast: Optional[List[str]] = None,
    alpha: float = 0.05,
    lfc_threshold: float = 0
) -> Dict:
    """
    Run the Wald-test pipeline in one call.

    Args:
        counts: Count matrix (genes x samples)
        metadata: Sample metadata
        design: Design formula
        contrast: Optional [factor, numerator, denominator]
        alpha: FDR target
        lfc_threshold: Log2 fold change threshold

    Returns:
        Dictionary containing:
            - results: DE results DataFrame
            - normalized_counts: Normalized count matrix
            - dds: fitted DESeqDataSet (for further analysis)
    """
    wrapper = DESeq2Wrapper()

    dds = wrapper.create_deseq_dataset(counts, metadata, design)
    dds = wrapper.run_deseq(dds)

    results = wrapper.get_results(
        dds,
        contrast=contrast,
        alpha=alpha,
        lfc_threshold=lfc_threshold
    )

    return {
        'results': results,
        'normalized_counts': wrapper.get_normalized_counts(dds),
        'dds': dds
    }
