"""
BBS Kernel - Behavioral-Safety Observation Lifecycle

A role-gated workflow core for safety observations with:
- Closed role, status and intent types
- Per-aggregate serialized transitions
- Typed, serializable rejection reasons
- Immutable closed records and an append-only transition history
"""

__version__ = "0.1.0"
