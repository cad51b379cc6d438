"""
Configuration Loader (``bbs_config.loader``).

Responsibility
--------------
Loads a ``workflow.yaml`` file and parses it into a
``bbs_config.schema.WorkflowConfigSet``.  This is internal tooling; the
single public entry point for runtime config is
``bbs_config.get_active_config()``.

Invariants enforced
-------------------
* Required keys raise ``KeyError``; no silent defaults for them.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from bbs_config.schema import ConcurrencyDef, NumberingDef, WorkflowConfigSet

WORKFLOW_FILE = "workflow.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_numbering(data: dict[str, Any]) -> NumberingDef:
    return NumberingDef(prefix=str(data["prefix"]), format=str(data["format"]))


def parse_concurrency(data: dict[str, Any] | None) -> ConcurrencyDef:
    data = data or {}
    return ConcurrencyDef(
        lock_timeout_seconds=float(data.get("lock_timeout_seconds", 10)),
    )


def parse_config_set(data: dict[str, Any]) -> WorkflowConfigSet:
    """
    Parse a ``WorkflowConfigSet`` from a raw YAML document.

    Raises:
        KeyError: if ``config_id``, ``version``, ``capabilities`` or
            ``numbering`` is missing.
    """
    return WorkflowConfigSet(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        description=str(data.get("description", "")),
        capabilities=dict(data["capabilities"] or {}),
        numbering=parse_numbering(data["numbering"]),
        concurrency=parse_concurrency(data.get("concurrency")),
        checksum=compute_checksum(data),
    )


def load_config_set(config_dir: Path) -> WorkflowConfigSet:
    """Load and parse ``workflow.yaml`` from a configuration set directory."""
    return parse_config_set(load_yaml_file(config_dir / WORKFLOW_FILE))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
