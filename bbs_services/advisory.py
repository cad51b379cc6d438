"""
bbs_services.advisory -- Optional risk advisor.

Responsibility:
    Produce a non-authoritative ``AdvisoryAssessment`` (risk level, short
    assessment, suggested corrective actions) for a new observation, and
    corrective-action suggestions for reviewers.

Architecture position:
    Services layer.  The advisor is a pluggable collaborator; its output
    is stored on the observation for display only.  The authorization
    guard and the lifecycle engine never read it.

Failure modes:
    - Advisor exceptions are caught by ``advise_safely`` and logged; the
      observation is created without an assessment.
"""

from __future__ import annotations

from typing import Protocol

from bbs_kernel.domain.observation import (
    AdvisoryAssessment,
    ObservationDraft,
    ObservationType,
    Severity,
)
from bbs_kernel.logging_config import get_logger

logger = get_logger("services.advisory")


class RiskAdvisor(Protocol):
    """Pluggable advisor.  Implementations may call remote services."""

    def assess(self, draft: ObservationDraft) -> AdvisoryAssessment | None:
        ...

    def suggest_actions(self, draft: ObservationDraft) -> tuple[str, ...]:
        ...


class NullRiskAdvisor:
    """Advisor that never advises."""

    def assess(self, draft: ObservationDraft) -> AdvisoryAssessment | None:
        return None

    def suggest_actions(self, draft: ObservationDraft) -> tuple[str, ...]:
        return ()


_SEVERITY_ORDER = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)

# keyword -> (minimum risk level, suggested action)
_KEYWORD_RULES: tuple[tuple[tuple[str, ...], Severity, str], ...] = (
    (("height", "fall", "ladder", "scaffold", "roof"), Severity.CRITICAL,
     "Verify fall protection and harness inspection before work at height"),
    (("electrical", "live wire", "shock", "panel"), Severity.CRITICAL,
     "Apply lockout/tagout and isolate energy sources"),
    (("confined", "tank", "vessel"), Severity.HIGH,
     "Issue a confined-space permit with gas testing and standby attendant"),
    (("fire", "flammable", "hot work", "welding"), Severity.HIGH,
     "Remove ignition sources and place fire extinguishers at the work area"),
    (("chemical", "spill", "leak", "fumes"), Severity.HIGH,
     "Contain the spill and review the safety data sheet with the crew"),
    (("forklift", "vehicle", "crane", "lifting"), Severity.HIGH,
     "Segregate pedestrian routes and check lifting equipment certification"),
    (("ppe", "helmet", "gloves", "goggles", "glasses", "boots", "mask"), Severity.MEDIUM,
     "Conduct a PPE compliance toolbox talk and replenish PPE stock"),
    (("guard", "machine", "rotating", "conveyor"), Severity.HIGH,
     "Reinstate machine guarding and verify interlocks"),
    (("housekeeping", "slip", "trip", "clutter", "oil"), Severity.MEDIUM,
     "Clean the area and mark walkways"),
)

_TYPE_ACTIONS: dict[ObservationType, tuple[str, ...]] = {
    ObservationType.UNSAFE_ACT: (
        "Coach the individual on the safe work procedure",
        "Reinforce the procedure in the next toolbox talk",
    ),
    ObservationType.UNSAFE_CONDITION: (
        "Rectify the condition and verify it with the area owner",
    ),
    ObservationType.SAFE_BEHAVIOR: (
        "Recognise the safe behaviour publicly",
    ),
}


class KeywordRiskAdvisor:
    """Rule-based advisor matching keywords in the category and description.

    The assessed level is the highest of the reported severity and every
    matched rule's minimum level.  Confidence grows with the number of
    matched rules.
    """

    source = "keyword_rules"

    def _matches(self, draft: ObservationDraft):
        text = " ".join(
            part for part in (
                draft.category,
                draft.description,
                draft.location_area or "",
                draft.immediate_action or "",
            ) if part
        ).lower()
        return [rule for rule in _KEYWORD_RULES if any(k in text for k in rule[0])]

    def assess(self, draft: ObservationDraft) -> AdvisoryAssessment | None:
        matches = self._matches(draft)
        level = draft.severity
        for _, minimum, _ in matches:
            if _SEVERITY_ORDER.index(minimum) > _SEVERITY_ORDER.index(level):
                level = minimum
        if draft.observation_type == ObservationType.SAFE_BEHAVIOR:
            level = Severity.LOW
        summary = (
            f"Assessed as {level.value} risk"
            + (f" ({len(matches)} hazard pattern(s) matched)" if matches else "")
        )
        return AdvisoryAssessment(
            source=self.source,
            risk_level=level,
            risk_assessment=summary,
            suggested_actions=self.suggest_actions(draft),
            confidence=round(min(0.9, 0.3 + 0.2 * len(matches)), 2),
        )

    def suggest_actions(self, draft: ObservationDraft) -> tuple[str, ...]:
        suggestions = [action for _, _, action in self._matches(draft)]
        suggestions.extend(_TYPE_ACTIONS.get(draft.observation_type, ()))
        return tuple(dict.fromkeys(suggestions))


def advise_safely(advisor: RiskAdvisor | None, draft: ObservationDraft) -> AdvisoryAssessment | None:
    """Run the advisor; log and return None on failure."""
    if advisor is None:
        return None
    try:
        return advisor.assess(draft)
    except Exception:
        logger.warning(
            "advisor_failed",
            extra={"advisor": type(advisor).__name__},
            exc_info=True,
        )
        return None
