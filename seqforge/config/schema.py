"""Typed configuration for SeqForge experiments.

Raw documents are validated first (:mod:`seqforge.validation`); the
normalized result is then parsed into the dataclasses below. Paradigm
configurations are tagged variants selected by the ``paradigm`` key:
:class:`OddballConfig`, :class:`LocalGlobalConfig` and
:class:`ForeperiodConfig`.

Example:
    >>> from seqforge.config.schema import ExperimentConfig
    >>> config = ExperimentConfig.from_dict(yaml_dict)
    >>> yaml_str = config.to_yaml()
    >>> config2 = ExperimentConfig.from_yaml(yaml_str)
"""

from __future__ import annotations

from dataclasses import dataclass, field
import io
from typing import Any, ClassVar, Dict, List, Optional, Union

import yaml

from seqforge.config.yaml_utils import load_yaml
from seqforge.errors import raise_for_errors
from seqforge.sampling.numeric_field import NumericField, Scalar, parse_numeric_field


def _field_to_dict(value: NumericField) -> Any:
    if isinstance(value, Scalar):
        return value.value
    return value.to_dict()


@dataclass
class Token:
    """A selectable stimulus.

    Attributes:
        label: Unique name within the paradigm.
        stimulus_ref: Key into the stimulus library.
        base_probability: Selection probability (oddball tokens, outcomes).
        code: Trigger code written to the TTL track; assigned from the
            token's position when omitted.
        duration_ms: Element duration, scalar or distribution.
    """

    label: str
    stimulus_ref: str
    base_probability: float = 1.0
    code: Optional[int] = None
    duration_ms: NumericField = field(default_factory=lambda: Scalar(150.0))

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "label": self.label,
            "stimulus_ref": self.stimulus_ref,
            "base_probability": self.base_probability,
            "code": self.code,
            "duration_ms": _field_to_dict(self.duration_ms),
        }
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], label: Optional[str] = None) -> Token:
        return cls(
            label=data.get("label", label),
            stimulus_ref=data["stimulus_ref"],
            base_probability=float(data.get("base_probability", 1.0)),
            code=data.get("code"),
            duration_ms=parse_numeric_field(data.get("duration_ms", 150.0), "duration_ms"),
        )


@dataclass
class Pattern:
    """A symbol string such as ``"AAAB"`` selected with ``base_probability``."""

    label: str
    sequence: str
    base_probability: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "sequence": self.sequence,
            "base_probability": self.base_probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Pattern:
        return cls(
            label=data["label"],
            sequence=data["sequence"],
            base_probability=float(data["base_probability"]),
        )


@dataclass
class SelectionConfig:
    """How trial labels are drawn.

    Attributes:
        mode: ``iid``, ``balanced_shuffle`` or ``csv_preset``.
        seed: Seed of the selection streams; ``None`` draws fresh entropy.
        sequence: Explicit labels or 0-based token indices for
            ``csv_preset``.
    """

    mode: str = "iid"
    seed: Optional[int] = None
    sequence: List[Union[str, int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"mode": self.mode}
        if self.seed is not None:
            result["seed"] = self.seed
        if self.sequence:
            result["sequence"] = list(self.sequence)
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> SelectionConfig:
        data = data or {}
        return cls(
            mode=data.get("mode", "iid"),
            seed=data.get("seed"),
            sequence=list(data.get("sequence", [])),
        )


@dataclass
class ConstraintPolicy:
    """Ordering constraints and the bounded repair policy that enforces them.

    Attributes:
        max_consecutive: Longest allowed run per label.
        max_attempts: Re-shuffle budget before giving up.
        on_failure: ``warn`` keeps the best attempt and emits a
            :class:`~seqforge.errors.ConstraintUnsatisfiableWarning`;
            ``error`` raises :class:`~seqforge.errors.ConstraintUnsatisfiable`.
    """

    max_consecutive: Dict[str, int] = field(default_factory=dict)
    max_attempts: int = 1000
    on_failure: str = "warn"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.on_failure not in ("warn", "error"):
            raise ValueError(f"on_failure must be 'warn' or 'error', got {self.on_failure!r}")

    @property
    def is_active(self) -> bool:
        return bool(self.max_consecutive)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_consecutive": dict(self.max_consecutive),
            "max_attempts": self.max_attempts,
            "on_failure": self.on_failure,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> ConstraintPolicy:
        """Create from dict; ``max_consecutive_<label>`` keys are folded in."""
        data = data or {}
        limits = {str(k): int(v) for k, v in (data.get("max_consecutive") or {}).items()}
        for key, value in data.items():
            if key.startswith("max_consecutive_"):
                limits[key[len("max_consecutive_"):]] = int(value)
        return cls(
            max_consecutive=limits,
            max_attempts=int(data.get("max_attempts", 1000)),
            on_failure=data.get("on_failure", "warn"),
        )


def _common_from_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "selection": SelectionConfig.from_dict(data.get("selection")),
        "constraints": ConstraintPolicy.from_dict(data.get("constraints")),
        "iti_ms": parse_numeric_field(data.get("iti_ms", 500.0), "iti_ms"),
        "refractory_ms": float(data.get("refractory_ms", 0.0)),
        "block_size": data.get("block_size"),
    }


def _common_to_dict(config: Any) -> Dict[str, Any]:
    result = {
        "selection": config.selection.to_dict(),
        "constraints": config.constraints.to_dict(),
        "iti_ms": _field_to_dict(config.iti_ms),
        "refractory_ms": config.refractory_ms,
    }
    if config.block_size is not None:
        result["block_size"] = config.block_size
    return result


@dataclass
class OddballConfig:
    """Oddball paradigm: one token per trial, drawn by probability."""

    paradigm: ClassVar[str] = "oddball"

    tokens: List[Token]
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    constraints: ConstraintPolicy = field(default_factory=ConstraintPolicy)
    iti_ms: NumericField = field(default_factory=lambda: Scalar(500.0))
    refractory_ms: float = 0.0
    block_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paradigm": self.paradigm,
            "tokens": [t.to_dict() for t in self.tokens],
            **_common_to_dict(self),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> OddballConfig:
        return cls(
            tokens=[Token.from_dict(t) for t in data["tokens"]],
            **_common_from_dict(data),
        )


@dataclass
class LocalGlobalConfig:
    """Local-global paradigm: symbol patterns played at a fixed IOI."""

    paradigm: ClassVar[str] = "local_global"

    symbols: Dict[str, Token]
    patterns: List[Pattern]
    ioi_ms: NumericField
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    constraints: ConstraintPolicy = field(default_factory=ConstraintPolicy)
    iti_ms: NumericField = field(default_factory=lambda: Scalar(500.0))
    refractory_ms: float = 0.0
    block_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paradigm": self.paradigm,
            "symbols": {s: t.to_dict() for s, t in self.symbols.items()},
            "patterns": [p.to_dict() for p in self.patterns],
            "ioi_ms": _field_to_dict(self.ioi_ms),
            **_common_to_dict(self),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LocalGlobalConfig:
        return cls(
            symbols={
                str(symbol): Token.from_dict(token, label=str(symbol))
                for symbol, token in data["symbols"].items()
            },
            patterns=[Pattern.from_dict(p) for p in data["patterns"]],
            ioi_ms=parse_numeric_field(data["ioi_ms"], "ioi_ms"),
            **_common_from_dict(data),
        )


@dataclass
class ForeperiodConfig:
    """Foreperiod paradigm: a cue, then an outcome after a variable delay."""

    paradigm: ClassVar[str] = "foreperiod"

    cue: Token
    outcomes: List[Token]
    foreperiod_ms: NumericField
    omission_probability: float = 0.0
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    constraints: ConstraintPolicy = field(default_factory=ConstraintPolicy)
    iti_ms: NumericField = field(default_factory=lambda: Scalar(500.0))
    refractory_ms: float = 0.0
    block_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paradigm": self.paradigm,
            "cue": self.cue.to_dict(),
            "outcomes": [t.to_dict() for t in self.outcomes],
            "foreperiod_ms": _field_to_dict(self.foreperiod_ms),
            "omission_probability": self.omission_probability,
            **_common_to_dict(self),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ForeperiodConfig:
        return cls(
            cue=Token.from_dict(data["cue"]),
            outcomes=[Token.from_dict(t) for t in data["outcomes"]],
            foreperiod_ms=parse_numeric_field(data["foreperiod_ms"], "foreperiod_ms"),
            omission_probability=float(data.get("omission_probability", 0.0)),
            **_common_from_dict(data),
        )


ParadigmConfig = Union[OddballConfig, LocalGlobalConfig, ForeperiodConfig]

PARADIGM_CONFIGS = {
    "oddball": OddballConfig,
    "local_global": LocalGlobalConfig,
    "foreperiod": ForeperiodConfig,
}


def parse_paradigm_config(data: Any, validate: bool = True) -> ParadigmConfig:
    """Turn a paradigm document (or an already-typed config) into its variant.

    Args:
        data: Paradigm dict or a paradigm config dataclass.
        validate: Run schema and cross-field validation first.

    Raises:
        SchemaError: Structural problems (all reported together).
        ConfigurationError: Cross-field problems (all reported together).
    """
    typed = isinstance(data, tuple(PARADIGM_CONFIGS.values()))
    if validate:
        from seqforge.validation import validate_paradigm

        # Typed configs are checked through their document form, so the
        # cross-field rules apply to hand-built dataclasses as well.
        result = validate_paradigm(data.to_dict() if typed else data)
        result.raise_for_errors()
        if not typed:
            data = result.normalized
    if typed:
        return data
    return PARADIGM_CONFIGS[data["paradigm"]].from_dict(data)


@dataclass
class StimulusDefinition:
    """Entry of the stimulus library.

    Attributes:
        name: Library key referenced by tokens' ``stimulus_ref``.
        type: Registered generator name (``tone``, ``noise`` ...).
        params: Generator parameters; values may be numeric-field
            distributions, resolved per element at compile time.
        routing: Output channels the generator's signal is written to.
            Defaults to every channel of the buffer.
        description: Free text.
    """

    name: str
    type: str
    params: Dict[str, Any] = field(default_factory=dict)
    routing: Optional[List[int]] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "params": dict(self.params),
            "routing": list(self.routing) if self.routing is not None else None,
            "description": self.description,
        }
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> StimulusDefinition:
        routing = data.get("routing")
        return cls(
            name=name,
            type=data["type"],
            params=dict(data.get("params") or {}),
            routing=[int(ch) for ch in routing] if routing is not None else None,
            description=data.get("description"),
        )


@dataclass
class CompilerSettings:
    """Settings of :class:`~seqforge.compilation.compiler.SequenceCompiler`.

    Attributes:
        ttl_pulse_samples: Width of each trigger pulse in samples.
        tail_padding_ms: Silence appended after the last element.
        max_workers: Generator worker threads (mixing stays serialized).
        generator_timeout_s: Per-element generation timeout.
        timing_check: ``off``, ``warn`` or ``error`` for the pre-compile
            timing feasibility check.
        max_samples: Optional cap on the buffer length.
        progress: Show a tqdm progress bar while rendering.
        debug: Print debug lines (also enabled by ``SEQFORGE_COMPILER_DEBUG``).
    """

    ttl_pulse_samples: int = 10
    tail_padding_ms: float = 0.0
    max_workers: int = 1
    generator_timeout_s: float = 5.0
    timing_check: str = "warn"
    max_samples: Optional[int] = None
    progress: bool = False
    debug: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result = {name: getattr(self, name) for name in self.__dataclass_fields__}
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> CompilerSettings:
        data = data or {}
        kwargs = {}
        for field_name in cls.__dataclass_fields__:
            if field_name in data:
                kwargs[field_name] = data[field_name]
        return cls(**kwargs)


@dataclass
class ExperimentConfig:
    """A complete experiment: paradigm, stimulus library and compile settings.

    Attributes:
        paradigm: Typed paradigm variant.
        stimuli: Stimulus library keyed by name.
        n_trials: Number of trials to plan.
        seed: Master seed; ``None`` draws fresh entropy at run time.
        sample_rate_hz: Output sample rate.
        compiler: Compiler settings.
        metadata: Free-form metadata copied into the manifest.
        schema_version: Version of the document format.
    """

    paradigm: ParadigmConfig
    stimuli: Dict[str, StimulusDefinition]
    n_trials: int
    seed: Optional[int] = None
    sample_rate_hz: float = 48000.0
    compiler: CompilerSettings = field(default_factory=CompilerSettings)
    metadata: Dict[str, Any] = field(default_factory=dict)
    schema_version: str = "1.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain dict for YAML serialization."""
        result = {
            "schema_version": self.schema_version,
            "metadata": dict(self.metadata),
            "seed": self.seed,
            "sample_rate_hz": self.sample_rate_hz,
            "n_trials": self.n_trials,
            "paradigm": self.paradigm.to_dict(),
            "stimuli": {name: s.to_dict() for name, s in self.stimuli.items()},
            "compiler": self.compiler.to_dict(),
        }
        return {k: v for k, v in result.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], validate: bool = True) -> ExperimentConfig:
        """Create from dict (e.g. from YAML).

        Args:
            data: Experiment document.
            validate: Validate before parsing. Every error is reported at once.

        Raises:
            SchemaError: Structural problems.
            ConfigurationError: Cross-field problems.
        """
        if validate:
            from seqforge.validation import validate_experiment

            result = validate_experiment(data)
            raise_for_errors(result.errors)
            data = result.normalized
        return cls(
            paradigm=parse_paradigm_config(data["paradigm"], validate=False),
            stimuli={
                name: StimulusDefinition.from_dict(name, entry)
                for name, entry in data["stimuli"].items()
            },
            n_trials=int(data["n_trials"]),
            seed=data.get("seed"),
            sample_rate_hz=float(data.get("sample_rate_hz", 48000.0)),
            compiler=CompilerSettings.from_dict(data.get("compiler")),
            metadata=dict(data.get("metadata") or {}),
            schema_version=data.get("schema_version", "1.0"),
        )

    def to_yaml(self) -> str:
        """Serialize to YAML string."""
        return yaml.dump(
            self.to_dict(),
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
        )

    @classmethod
    def from_yaml(cls, yaml_str: str) -> ExperimentConfig:
        """Load from YAML string (duplicate keys are rejected)."""
        data = load_yaml(io.StringIO(yaml_str))
        if not isinstance(data, dict):
            raise ValueError("YAML did not produce a dict")
        return cls.from_dict(data)
