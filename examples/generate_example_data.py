"""Generate a synthetic mammary-gland style dataset for trying the walkthrough."""

from pathlib import Path

import numpy as np
import pandas as pd


CELL_TYPES = ["basal", "luminal"]
STATUSES = ["virgin", "pregnant", "lactate"]


def generate_example_data(
    n_genes: int = 2000,
    n_replicates: int = 2,
    n_de_genes: int = 200,
    fold_change_range: tuple = (2, 6),
    output_dir: str = "examples/data",
    seed: int = 42
):
    """
    Generate negative binomial counts for a CellType x Status design.

    Writes ``SampleInfo.txt`` and a featureCounts-style
    ``GSE60450_Lactation-GenewiseCounts.txt`` (comment line, annotation
    columns, ``.bam`` sample columns) to ``output_dir``.

    Args:
        n_genes: Total number of genes
        n_replicates: Samples per CellType/Status combination
        n_de_genes: Genes whose expression depends on Status
        fold_change_range: (min, max) fold change for DE genes
        output_dir: Directory to save files
        seed: Random seed for reproducibility
    """
    rng = np.random.default_rng(seed)

    samples = []
    for cell_type in CELL_TYPES:
        for status in STATUSES:
            for rep in range(n_replicates):
                code = f"{cell_type[0].upper()}{status[0].upper()}{rep + 1}"
                samples.append({
                    "FileName": f"MCL1.{code}_L002_R1.bam",
                    "SampleName": f"MCL1.{code}",
                    "CellType": cell_type,
                    "Status": status,
                })
    sample_info = pd.DataFrame(samples)

    gene_ids = [str(100000 + i) for i in range(n_genes)]
    base_expression = rng.lognormal(mean=4, sigma=2, size=n_genes)

    status_effect = np.ones((n_genes, len(STATUSES)))
    de_indices = rng.choice(n_genes, n_de_genes, replace=False)
    for i, idx in enumerate(de_indices):
        fold = rng.uniform(*fold_change_range)
        status_effect[idx, 1 + i % 2] = fold if i % 4 < 2 else 1 / fold

    cell_effect = np.exp(rng.normal(0, 0.7, size=(n_genes, len(CELL_TYPES))))

    counts = np.zeros((n_genes, len(sample_info)), dtype=int)
    for j, row in sample_info.iterrows():
        mean = (
            base_expression
            * cell_effect[:, CELL_TYPES.index(row["CellType"])]
            * status_effect[:, STATUSES.index(row["Status"])]
        )
        dispersion = rng.uniform(0.05, 0.2, n_genes)
        counts[:, j] = rng.negative_binomial(n=1 / dispersion, p=1 / (1 + mean * dispersion))

    count_table = pd.DataFrame(counts, columns=sample_info["FileName"])
    count_table.insert(0, "Geneid", gene_ids)
    count_table.insert(1, "Length", rng.integers(500, 8000, n_genes))

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    sample_info.to_csv(output_path / "SampleInfo.txt", sep="\t", index=False)
    counts_file = output_path / "GSE60450_Lactation-GenewiseCounts.txt"
    with open(counts_file, "w") as f:
        f.write("# Synthetic counts generated by generate_example_data.py\n")
        count_table.to_csv(f, sep="\t", index=False)

    print(f"Generated {n_genes} genes x {len(sample_info)} samples in {output_path.absolute()}")
    return count_table, sample_info


if __name__ == "__main__":
    generate_example_data()
