"""
Configuration compiler (``bbs_config.compiler``).

Turns a validated ``WorkflowConfigSet`` into ``CompiledWorkflowConfig``,
the only runtime artifact: a ``CapabilityMatrix``, a
``ReportNumberFormat`` and the lock timeout, stamped with the source
checksum.
"""

from __future__ import annotations

from dataclasses import dataclass

from bbs_config.schema import WorkflowConfigSet
from bbs_kernel.domain.numbering import ReportNumberFormat
from bbs_kernel.domain.roles import CapabilityMatrix


@dataclass(frozen=True)
class CompiledWorkflowConfig:
    config_id: str
    config_version: int
    checksum: str
    capability_matrix: CapabilityMatrix
    number_format: ReportNumberFormat
    lock_timeout_seconds: float


def compile_workflow_config(config: WorkflowConfigSet) -> CompiledWorkflowConfig:
    """
    Raises:
        ValueError: unknown role/category or bad numbering format.  The
            validator reports these first; this is the last line.
    """
    return CompiledWorkflowConfig(
        config_id=config.config_id,
        config_version=config.version,
        checksum=config.checksum,
        capability_matrix=CapabilityMatrix.from_mapping(config.capabilities),
        number_format=ReportNumberFormat(
            prefix=config.numbering.prefix,
            pattern=config.numbering.format,
        ),
        lock_timeout_seconds=config.concurrency.lock_timeout_seconds,
    )
