"""End-to-end orchestration: document in, sequence artifact out.

``config → validation → paradigm adapter → TrialPlan → PatternBuilder →
ElementTable → SequenceCompiler → SequenceArtifact``

Example:
    >>> from seqforge.pipeline import ExperimentPipeline
    >>> pipeline = ExperimentPipeline.from_yaml("oddball.yaml")
    >>> artifact = pipeline.run()
    >>> artifact.write_hdf5("oddball.h5")
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from seqforge.compilation.artifact import SequenceArtifact
from seqforge.compilation.compiler import CompileContext, SequenceCompiler
from seqforge.compilation.pattern_builder import ElementTable, PatternBuilder
from seqforge.config.schema import ExperimentConfig
from seqforge.config.yaml_utils import load_config_file
from seqforge.paradigms.plan import TrialPlan
from seqforge.register_components import register_all
from seqforge.registry import PARADIGM_REGISTRY
from seqforge.sampling.rng import RNGStreamManager


class ExperimentPipeline:
    """Run an experiment document through every compile stage.

    Args:
        config: :class:`ExperimentConfig` or a raw document (validated here;
            all errors are reported together).

    Attributes:
        config: The typed configuration. When the document has no ``seed``
            a fresh one is drawn and stored here, so
            ``pipeline.config.to_dict()`` always reproduces the run.
    """

    def __init__(self, config: Union[ExperimentConfig, Mapping[str, Any]]):
        register_all()
        # Typed configs are revalidated through their document form.
        document = config.to_dict() if isinstance(config, ExperimentConfig) else dict(config)
        config = ExperimentConfig.from_dict(document)
        if config.seed is None:
            config = dataclasses.replace(config, seed=RNGStreamManager().master_seed)
        paradigm = config.paradigm
        if paradigm.selection.seed is None:
            selection = dataclasses.replace(paradigm.selection, seed=config.seed)
            config = dataclasses.replace(
                config, paradigm=dataclasses.replace(paradigm, selection=selection)
            )
        self.config = config
        self.compiler = SequenceCompiler(config.compiler)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ExperimentPipeline":
        """Create from a YAML file (duplicate keys are rejected)."""
        return cls(load_config_file(path))

    def plan(self) -> TrialPlan:
        adapter = PARADIGM_REGISTRY.create(self.config.paradigm.paradigm)
        return adapter.generate_trial_plan(self.config.paradigm, self.config.n_trials)

    def build_table(self, plan: TrialPlan) -> ElementTable:
        return PatternBuilder().build(plan)

    def compile(self, table: ElementTable, plan: Optional[TrialPlan] = None) -> SequenceArtifact:
        params: Dict[str, Any] = {
            "experiment": self.config.to_dict(),
            "plan": dict(plan.metadata) if plan is not None else {},
        }
        context = CompileContext(
            rng=RNGStreamManager(self.config.seed),
            params=params,
            schema_version=self.config.schema_version,
        )
        return self.compiler.compile(
            table, self.config.stimuli, self.config.sample_rate_hz, context
        )

    def run(self) -> SequenceArtifact:
        """Plan, expand and compile; returns the artifact."""
        plan = self.plan()
        table = self.build_table(plan)
        return self.compile(table, plan)


def compile_experiment(
    config: Union[ExperimentConfig, Mapping[str, Any], str, Path],
    output_path: Optional[Union[str, Path]] = None,
) -> SequenceArtifact:
    """Compile an experiment and optionally write it to HDF5.

    Args:
        config: Typed config, raw document, or path to a YAML file.
        output_path: Where to write the HDF5 container, if given.

    Returns:
        The compiled artifact.
    """
    if isinstance(config, (str, Path)):
        pipeline = ExperimentPipeline.from_yaml(config)
    else:
        pipeline = ExperimentPipeline(config)
    artifact = pipeline.run()
    if output_path is not None:
        artifact.write_hdf5(output_path)
    return artifact
