"""Experiment configuration: typed dataclasses and YAML loading."""

from seqforge.config.schema import (
    Token,
    Pattern,
    SelectionConfig,
    ConstraintPolicy,
    OddballConfig,
    LocalGlobalConfig,
    ForeperiodConfig,
    ParadigmConfig,
    StimulusDefinition,
    CompilerSettings,
    ExperimentConfig,
    parse_paradigm_config,
)
from seqforge.config.yaml_utils import load_yaml, load_config_file

__all__ = [
    "Token",
    "Pattern",
    "SelectionConfig",
    "ConstraintPolicy",
    "OddballConfig",
    "LocalGlobalConfig",
    "ForeperiodConfig",
    "ParadigmConfig",
    "StimulusDefinition",
    "CompilerSettings",
    "ExperimentConfig",
    "parse_paradigm_config",
    "load_yaml",
    "load_config_file",
]
