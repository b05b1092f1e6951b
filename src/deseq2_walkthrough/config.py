"""Configuration management for the DESeq2 walkthrough."""

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, EnvSettingsSource, SettingsConfigDict
import yaml


class ContrastSpec(BaseModel):
    """A comparison to extract from a fitted model.

    Either ``name`` (an entry of ``resultsNames``) or the
    ``factor``/``numerator``/``denominator`` triple must be given.
    """

    name: Optional[str] = None
    factor: Optional[str] = None
    numerator: Optional[str] = None
    denominator: Optional[str] = None

    @model_validator(mode="after")
    def _check_form(self):
        triple = [self.factor, self.numerator, self.denominator]
        if self.name is None and any(part is None for part in triple):
            raise ValueError("Contrast needs a coefficient name or factor, numerator and denominator")
        if self.name is not None and any(part is not None for part in triple):
            raise ValueError("Contrast takes either a coefficient name or a level triple, not both")
        return self

    @property
    def label(self) -> str:
        if self.name is not None:
            return self.name
        return f"{self.factor}_{self.numerator}_vs_{self.denominator}"

    def as_list(self) -> Optional[List[str]]:
        """Triple in the form expected by ``results(contrast=...)``."""
        if self.name is not None:
            return None
        return [self.factor, self.numerator, self.denominator]


class AnalysisDefaults(BaseModel):
    """Default analysis parameters."""

    alpha: float = Field(default=0.05, gt=0.0, lt=1.0)
    lfc_threshold: float = Field(default=0.0, ge=0.0)
    min_count: int = Field(default=5, ge=0)  # a gene must exceed this count
    min_samples: int = Field(default=2, ge=1)
    top_n: int = Field(default=20, ge=1)
    blind_vst: bool = True


def _default_contrasts() -> List[ContrastSpec]:
    return [
        ContrastSpec(name="Status_pregnant_vs_virgin"),
        ContrastSpec(name="Status_lactate_vs_virgin"),
        ContrastSpec(factor="Status", numerator="lactate", denominator="pregnant"),
        ContrastSpec(name="CellType_luminal_vs_basal"),
    ]


class DesignConfig(BaseModel):
    """Model formulas, factor levels and contrasts."""

    full_design: str = "~ CellType + Status"
    reduced_design: str = "~ CellType"
    interaction_design: Optional[str] = "~ CellType * Status"
    factor_levels: Dict[str, List[str]] = Field(
        default_factory=lambda: {"Status": ["virgin", "pregnant", "lactate"]}
    )
    contrasts: List[ContrastSpec] = Field(default_factory=_default_contrasts)
    primary_contrast: str = "Status_lactate_vs_virgin"
    pca_groups: List[str] = Field(default_factory=lambda: ["Status", "CellType"])

    @model_validator(mode="after")
    def _check_primary(self):
        labels = [c.label for c in self.contrasts]
        if self.primary_contrast not in labels:
            raise ValueError(
                f"primary_contrast '{self.primary_contrast}' is not one of the configured contrasts: {labels}"
            )
        return self


class PathConfig(BaseModel):
    """Path configurations."""

    user_home: Path = Field(default_factory=lambda: Path.home() / ".deseq2_walkthrough")
    data_dir: Optional[Path] = None
    results_dir: Optional[Path] = None
    sample_info_file: Optional[Path] = None
    counts_file: Optional[Path] = None
    preprocessed_bundle: Optional[Path] = None
    output_bundle: Optional[Path] = None

    @model_validator(mode="after")
    def _derive_paths(self):
        # Runs for nested dicts (YAML, environment) as well as keyword construction
        self.user_home = self.user_home.expanduser()
        if self.data_dir is None:
            self.data_dir = self.user_home / "data"
        if self.results_dir is None:
            self.results_dir = self.user_home / "results"
        if self.sample_info_file is None:
            self.sample_info_file = self.data_dir / "SampleInfo.txt"
        if self.counts_file is None:
            self.counts_file = self.data_dir / "GSE60450_Lactation-GenewiseCounts.txt"
        if self.preprocessed_bundle is None:
            self.preprocessed_bundle = self.data_dir / "preprocessing.RData"
        if self.output_bundle is None:
            self.output_bundle = self.results_dir / "DE.RData"
        return self

    def create_directories(self):
        """Create all necessary directories."""
        for path in [self.user_home, self.data_dir, self.results_dir]:
            path.mkdir(parents=True, exist_ok=True)


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(env_prefix="DESEQ2_WT_", env_nested_delimiter="__")

    defaults: AnalysisDefaults = Field(default_factory=AnalysisDefaults)
    design: DesignConfig = Field(default_factory=DesignConfig)
    paths: PathConfig = Field(default_factory=PathConfig)

    log_level: str = "INFO"
    write_tables: bool = True

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file; environment variables override it."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        # keyword arguments outrank the environment, so apply it here
        env = EnvSettingsSource(cls)()
        return cls(**_merge(data, env))

    def to_yaml(self, path: Path):
        """Save configuration to YAML file."""
        data = self.model_dump(mode="json", exclude_none=True)

        with open(path, 'w') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def initialize(self):
        """Create directories and a commented default config file."""
        self.paths.create_directories()

        config_file = self.paths.user_home / "config.yaml"
        if not config_file.exists():
            config_file.write_text(CONFIG_TEMPLATE.lstrip())


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        default_config_path = Path.home() / ".deseq2_walkthrough" / "config.yaml"
        if default_config_path.exists():
            _config = Config.from_yaml(default_config_path)
        else:
            _config = Config()
            _config.initialize()
    return _config


def set_config(config: Optional[Config]):
    """Set the global configuration instance."""
    global _config
    _config = config


# Example config.yaml template
CONFIG_TEMPLATE = """
# DESeq2 walkthrough configuration

defaults:
  alpha: 0.05            # FDR target used by results() and independent filtering
  lfc_threshold: 0.0     # Log2 fold change threshold
  min_count: 5           # Genes need more than this many reads...
  min_samples: 2         # ...in at least this many samples
  top_n: 20              # Rows shown per results table
  blind_vst: true

design:
  full_design: "~ CellType + Status"
  reduced_design: "~ CellType"
  interaction_design: "~ CellType * Status"
  factor_levels:
    Status: [virgin, pregnant, lactate]
  contrasts:
    - name: Status_pregnant_vs_virgin
    - name: Status_lactate_vs_virgin
    - factor: Status
      numerator: lactate
      denominator: pregnant
    - name: CellType_luminal_vs_basal
  primary_contrast: Status_lactate_vs_virgin
  pca_groups: [Status, CellType]

paths:
  user_home: ~/.deseq2_walkthrough
  # data_dir: ~/.deseq2_walkthrough/data
  # results_dir: ~/.deseq2_walkthrough/results
  # sample_info_file: <data_dir>/SampleInfo.txt
  # counts_file: <data_dir>/GSE60450_Lactation-GenewiseCounts.txt
  # preprocessed_bundle: <data_dir>/preprocessing.RData
  # output_bundle: <results_dir>/DE.RData

log_level: INFO
write_tables: true
"""
