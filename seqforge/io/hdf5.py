"""HDF5 container for sequence artifacts.

Layout::

    /audio              float32 [samples, channels]
    /ttl                uint8 | uint16 [samples]
    /events/<column>    one dataset per column
    /trial_table/<column>
    /element_table/<column>
    /manifest           JSON string
    attrs: format, format_version, sample_rate_hz, audio_sha256, schema_version

Optional string columns store ``None`` as the empty string.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Sequence, Type, Union

import numpy as np

from seqforge.compilation.artifact import EventRow, SequenceArtifact, audio_sha256, ttl_sha256
from seqforge.compilation.pattern_builder import ElementRow, ElementTable, TrialWindow

FORMAT_NAME = "seqforge-sequence"
FORMAT_VERSION = 1

_NUMPY_DTYPES = {"int": np.int64, "float": np.float64}


def _require_h5py():
    try:
        import h5py
    except ImportError:
        raise ImportError(
            "h5py is required for HDF5 output. Install with: pip install h5py"
        )
    return h5py


def _write_table(h5py, group, rows: Sequence[Any], row_cls: Type) -> None:
    group.attrs["n_rows"] = len(rows)
    for name, kind in row_cls.COLUMNS:
        values = [getattr(row, name) for row in rows]
        if kind in _NUMPY_DTYPES:
            group.create_dataset(name, data=np.asarray(values, dtype=_NUMPY_DTYPES[kind]))
        else:
            text = ["" if v is None else str(v) for v in values]
            group.create_dataset(
                name,
                data=np.asarray(text, dtype=object),
                dtype=h5py.string_dtype(encoding="utf-8"),
            )


def _read_table(group, row_cls: Type) -> List[Any]:
    n_rows = int(group.attrs["n_rows"])
    columns = {}
    for name, kind in row_cls.COLUMNS:
        dataset = group[name]
        if kind == "int":
            columns[name] = [int(v) for v in dataset[()]]
        elif kind == "float":
            columns[name] = [float(v) for v in dataset[()]]
        else:
            values = [str(v) for v in dataset.asstr()[()]] if n_rows else []
            if kind == "optional_str":
                values = [v if v != "" else None for v in values]
            columns[name] = values
    return [
        row_cls(**{name: columns[name][idx] for name, _ in row_cls.COLUMNS})
        for idx in range(n_rows)
    ]


def write_artifact(artifact: SequenceArtifact, path: Union[str, Path]) -> Path:
    """Write ``artifact`` to ``path`` (overwriting it).

    Raises:
        ImportError: If h5py is not installed.
    """
    h5py = _require_h5py()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest = artifact.manifest

    with h5py.File(path, "w") as f:
        f.attrs["format"] = FORMAT_NAME
        f.attrs["format_version"] = FORMAT_VERSION
        f.attrs["sample_rate_hz"] = float(manifest["sample_rate_hz"])
        f.attrs["audio_sha256"] = manifest["audio_sha256"]
        f.attrs["schema_version"] = str(manifest.get("schema_version", ""))

        f.create_dataset("audio", data=np.asarray(artifact.audio, dtype=np.float32))
        f.create_dataset("ttl", data=np.asarray(artifact.ttl))
        _write_table(h5py, f.create_group("events"), artifact.events, EventRow)
        _write_table(h5py, f.create_group("trial_table"), artifact.trial_table, TrialWindow)
        _write_table(h5py, f.create_group("element_table"), artifact.element_table.rows, ElementRow)
        f.create_dataset(
            "manifest",
            data=artifact.manifest_json,
            dtype=h5py.string_dtype(encoding="utf-8"),
        )
    return path


def read_artifact(path: Union[str, Path]) -> SequenceArtifact:
    """Read an artifact written by :func:`write_artifact`.

    Raises:
        ImportError: If h5py is not installed.
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file is not a sequence container or its content
            no longer matches the recorded hashes.
    """
    h5py = _require_h5py()
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Artifact not found: {path}")

    with h5py.File(path, "r") as f:
        if f.attrs.get("format") != FORMAT_NAME:
            raise ValueError(f"{path} is not a {FORMAT_NAME} container")
        audio = np.asarray(f["audio"][()], dtype=np.float32)
        ttl = np.asarray(f["ttl"][()])
        events = _read_table(f["events"], EventRow)
        trial_table = _read_table(f["trial_table"], TrialWindow)
        element_rows = _read_table(f["element_table"], ElementRow)
        manifest_json = f["manifest"].asstr()[()]

    artifact = SequenceArtifact(
        audio=audio,
        ttl=ttl,
        events=tuple(events),
        trial_table=tuple(trial_table),
        element_table=ElementTable(rows=tuple(element_rows), trials=tuple(trial_table)),
        manifest_json=str(manifest_json),
    )
    manifest = artifact.manifest
    if manifest.get("audio_sha256") != audio_sha256(artifact.audio) or manifest.get(
        "ttl_sha256"
    ) != ttl_sha256(artifact.ttl):
        raise ValueError(f"{path}: content does not match the hashes in its manifest")
    return artifact
