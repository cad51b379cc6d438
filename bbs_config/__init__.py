"""
bbs_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a ``CompiledWorkflowConfig`` -- the
    role capability matrix, report numbering format and lock timeout.
    YAML loading is internal and never exposed to callers.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``bbs_kernel`` (imports only its domain types) and below
    ``bbs_services``.  The kernel MUST NEVER import from ``bbs_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: role coverage, category validity, guard
      coverage, numbering format and timeout are checked before compiling.
    - Deterministic compilation: the same YAML always produces the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set at the given path.
    - ``ValueError`` -- validation failures (all errors listed).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BBS_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying each transition back to the matrix that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bbs_config.compiler import CompiledWorkflowConfig, compile_workflow_config
from bbs_config.loader import load_config_set
from bbs_config.validator import ConfigValidationResult, validate_configuration

_logger = logging.getLogger("bbs_kernel.config")

# Default configuration set directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_active_config(config_dir: Path | None = None) -> CompiledWorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Directory holding ``workflow.yaml``.  Defaults to
            bbs_config/sets/default/.

    Returns:
        CompiledWorkflowConfig -- the sole runtime artifact.

    Raises:
        FileNotFoundError: If the configuration set is missing.
        ValueError: If configuration validation fails.
    """
    set_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    if not set_dir.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {set_dir}")

    config_set = load_config_set(set_dir)

    validation = validate_configuration(config_set)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    compiled = compile_workflow_config(config_set)

    _logger.info(
        "BBS_CONFIG_TRACE",
        extra={
            "trace_type": "BBS_CONFIG_TRACE",
            "config_set_id": compiled.config_id,
            "config_set_version": compiled.config_version,
            "checksum": compiled.checksum,
            "grant_count": len(compiled.capability_matrix.grants),
            "report_prefix": compiled.number_format.prefix,
            "lock_timeout_seconds": compiled.lock_timeout_seconds,
        },
    )
    return compiled


__all__ = [
    "CompiledWorkflowConfig",
    "ConfigValidationResult",
    "get_active_config",
    "validate_configuration",
]
