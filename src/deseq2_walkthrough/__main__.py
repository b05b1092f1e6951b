"""Run the walkthrough with the configured paths and print the headline tables."""

import logging

from .config import get_config
from .results import top_genes
from .workflow import run_walkthrough


def main():
    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s"
    )

    outputs = run_walkthrough(config)

    n = config.defaults.top_n
    print(f"\nCoefficients: {', '.join(outputs['results_names'])}")
    for label, table in outputs['contrasts'].items():
        print(f"\n== {label} ==")
        print(outputs['summaries'][label].describe())
        print(top_genes(table, n)[['GeneID', 'baseMean', 'log2FoldChange', 'padj']].to_string(index=False))

    print("\n== LRT: full vs reduced design ==")
    print(top_genes(outputs['lrt_results'], n)[['GeneID', 'baseMean', 'stat', 'padj']].to_string(index=False))
    print(f"\nSaved results to {config.paths.output_bundle}")


if __name__ == "__main__":
    main()
