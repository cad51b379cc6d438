"""
Configuration Validator (``bbs_config.validator``).

Responsibility
--------------
Validates a ``WorkflowConfigSet`` before it is compiled, so a bad matrix
or numbering format fails at startup rather than on the first request.

Invariants enforced
-------------------
* Role coverage -- every ``Role`` has an entry; unknown roles are errors.
* Category validity -- every category is a ``CapabilityCategory``.
* Scope lists are lists of strings.
* Guard coverage -- at least one role can review and one can approve
  closure, otherwise observations could never leave ``open`` or
  ``pending_closure``.
* Numbering format -- one run of ``X``, alphanumeric prefix.
* Lock timeout is positive.

Failure modes
-------------
* Validation errors -> configuration MUST NOT be compiled.
* Warnings (e.g. a role with no grants at all) do not block compilation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from bbs_config.schema import WorkflowConfigSet
from bbs_kernel.domain.numbering import format_problem
from bbs_kernel.domain.roles import BBS_MODULE, CapabilityCategory, Role


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: WorkflowConfigSet) -> ConfigValidationResult:
    """Run all checks and collect every problem (not just the first)."""
    result = ConfigValidationResult()
    _validate_roles(config, result)
    _validate_categories(config, result)
    _validate_guard_coverage(config, result)
    _validate_numbering(config, result)
    _validate_concurrency(config, result)
    return result


def _validate_roles(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    known = {r.value for r in Role}
    for role_name in config.capabilities:
        if role_name not in known:
            result.add_error(f"Unknown role '{role_name}' in capabilities")
    for role in Role:
        if role.value not in config.capabilities:
            result.add_error(f"Role '{role.value}' has no capability entry")


def _validate_categories(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    known = {c.value for c in CapabilityCategory}
    for role_name, modules in config.capabilities.items():
        if not isinstance(modules, dict):
            result.add_error(f"Role '{role_name}': expected a mapping of modules")
            continue
        granted = 0
        for module, categories in modules.items():
            if not isinstance(categories, dict):
                result.add_error(f"Role '{role_name}' module '{module}': expected a mapping")
                continue
            for category, scopes in categories.items():
                if category not in known:
                    result.add_error(
                        f"Role '{role_name}' module '{module}': unknown category '{category}'"
                    )
                if scopes is None:
                    continue
                if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
                    result.add_error(
                        f"Role '{role_name}' {module}.{category}: scopes must be a list of strings"
                    )
                    continue
                granted += len(scopes)
        if granted == 0:
            result.add_warning(f"Role '{role_name}' holds no capabilities")


def _roles_granted(config: WorkflowConfigSet, category: CapabilityCategory) -> list[str]:
    roles = []
    for role_name, modules in config.capabilities.items():
        if not isinstance(modules, dict):
            continue
        categories = modules.get(BBS_MODULE) or {}
        if isinstance(categories, dict) and categories.get(category.value):
            roles.append(role_name)
    return roles


def _validate_guard_coverage(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    for category in (CapabilityCategory.REVIEW, CapabilityCategory.APPROVE):
        if not _roles_granted(config, category):
            result.add_error(
                f"No role holds '{BBS_MODULE}.{category.value}'; observations could never progress"
            )


def _validate_numbering(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    problem = format_problem(config.numbering.prefix, config.numbering.format)
    if problem:
        result.add_error(f"numbering: {problem}")


def _validate_concurrency(config: WorkflowConfigSet, result: ConfigValidationResult) -> None:
    if config.concurrency.lock_timeout_seconds <= 0:
        result.add_error("concurrency.lock_timeout_seconds must be positive")
