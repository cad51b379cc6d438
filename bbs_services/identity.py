"""
bbs_services.identity -- In-memory identity provider.

Maps actor ids to ``Actor`` records (role, company, plant, area).  Used
by tests, demos and single-process deployments; production wires a
provider backed by the user directory behind the same protocol.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from uuid import UUID

from bbs_kernel.domain.actor import Actor


class StaticIdentityProvider:
    """Thread-safe dict-backed ``IdentityProvider``."""

    def __init__(self, actors: Iterable[Actor] = ()):
        self._lock = threading.Lock()
        self._actors: dict[UUID, Actor] = {a.actor_id: a for a in actors}

    def get_actor(self, actor_id: UUID) -> Actor | None:
        with self._lock:
            return self._actors.get(actor_id)

    def register(self, actor: Actor) -> Actor:
        with self._lock:
            self._actors[actor.actor_id] = actor
        return actor

    def remove(self, actor_id: UUID) -> None:
        with self._lock:
            self._actors.pop(actor_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._actors)
