"""YAML utilities with duplicate-key validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, TextIO, Union

import yaml


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict:
    mapping = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ValueError(
                f"Duplicate key '{key}' detected in YAML (line {key_node.start_mark.line + 1})."
            )
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def load_yaml(stream: Union[str, TextIO]) -> Any:
    """Load YAML from a string or file-like object with duplicate-key validation.

    Raises:
        ValueError: If duplicate keys are detected in a YAML mapping.
    """
    return yaml.load(stream, Loader=UniqueKeyLoader)


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load an experiment document from a YAML (or JSON) file.

    Args:
        path: File to read. JSON is a subset of YAML, so both parse.

    Returns:
        The document as a dict.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not contain a mapping or has duplicate keys.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as handle:
        data = load_yaml(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{path} did not produce a mapping")
    return data
