"""
Configuration schema (``bbs_config.schema``).

Frozen dataclasses for the parsed, not yet validated, workflow
configuration.  Field names mirror the YAML keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NumberingDef:
    prefix: str
    format: str


@dataclass(frozen=True)
class ConcurrencyDef:
    lock_timeout_seconds: float


@dataclass(frozen=True)
class WorkflowConfigSet:
    """A configuration set as loaded from one ``workflow.yaml``.

    ``capabilities`` keeps the raw ``{role: {module: {category: [scopes]}}}``
    mapping; the compiler turns it into a ``CapabilityMatrix``.
    """

    config_id: str
    version: int
    numbering: NumberingDef
    concurrency: ConcurrencyDef
    capabilities: dict[str, Any] = field(default_factory=dict)
    description: str = ""
    checksum: str = ""
