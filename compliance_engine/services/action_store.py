"""
Action Store — persistence and lifecycle of Action records.

Actions live in the KeyValueStore under ``ai_actions:<id>``, one document
per action, so a transition only rewrites the action it touches. Every
transition is a read-modify-write done under the lock stripe its id hashes
to, so the lock set stays fixed however many actions are stored.

Transition methods return True when the transition happened and False
when the action is missing or its current state does not allow it.
Nothing here raises for a state-machine refusal.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from compliance_engine.models.action import Action, ActionStatus
from compliance_engine.models.base import utcnow
from compliance_engine.services.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

ACTION_PREFIX = "ai_actions:"
LOCK_STRIPES = 64


class ActionStore:
    """Keyed collection of Action records with an atomic state machine."""

    def __init__(self, store: KeyValueStore, clock: Callable = utcnow):
        self.store = store
        self._clock = clock
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, action_id: str) -> threading.Lock:
        return self._locks[hash(action_id) % len(self._locks)]

    # ── CRUD ─────────────────────────────────────────────────────────────────

    def save(self, action: Action) -> Action:
        with self._lock_for(action.id):
            self.store.set(ACTION_PREFIX + action.id, action.to_dict())
        logger.info("Action saved: %s (%s, status=%s)", action.id, action.type.value,
                    action.status.value, extra={"action_id": action.id, "action_type": action.type.value})
        return action

    def get(self, action_id: str) -> Action | None:
        data = self.store.get(ACTION_PREFIX + action_id)
        return Action.from_dict(data) if data else None

    def list_actions(self, status: str | None = None, action_type: str | None = None) -> list[Action]:
        """All actions, oldest first, optionally filtered."""
        actions = [Action.from_dict(d) for d in self.store.values(ACTION_PREFIX)]
        if status:
            actions = [a for a in actions if a.status.value == status]
        if action_type:
            actions = [a for a in actions if a.type.value == action_type]
        return sorted(actions, key=lambda a: (a.created_at, a.id))

    # ── State machine ────────────────────────────────────────────────────────

    def _transition(self, action_id: str, name: str, apply: Callable[[Action], bool]) -> bool:
        with self._lock_for(action_id):
            data = self.store.get(ACTION_PREFIX + action_id)
            if not data:
                logger.info("Action %s refused: %s not found", name, action_id,
                            extra={"action_id": action_id})
                return False
            action = Action.from_dict(data)
            before = action.status
            if not apply(action):
                logger.info("Action %s refused: %s is %s%s", name, action_id, before.value,
                            " (paused)" if action.is_paused else "",
                            extra={"action_id": action_id})
                return False
            action.updated_at = self._clock()
            self.store.set(ACTION_PREFIX + action_id, action.to_dict())
        logger.info("Action %s: %s %s → %s", name, action_id, before.value, action.status.value,
                    extra={"action_id": action_id, "action_type": action.type.value})
        return True

    def start(self, action_id: str) -> bool:
        """pending → in_progress."""
        def apply(action: Action) -> bool:
            if action.status != ActionStatus.PENDING:
                return False
            action.status = ActionStatus.IN_PROGRESS
            action.executed_at = self._clock()
            return True
        return self._transition(action_id, "start", apply)

    def complete(self, action_id: str, result: Any = None) -> bool:
        def apply(action: Action) -> bool:
            if action.is_terminal:
                return False
            action.status = ActionStatus.COMPLETED
            action.result = result
            action.error = None
            action.pause_reason = None
            action.completed_at = self._clock()
            return True
        return self._transition(action_id, "complete", apply)

    def fail(self, action_id: str, error: str) -> bool:
        def apply(action: Action) -> bool:
            if action.is_terminal:
                return False
            action.status = ActionStatus.FAILED
            action.error = error
            action.pause_reason = None
            action.completed_at = self._clock()
            return True
        return self._transition(action_id, "fail", apply)

    def cancel(self, action_id: str, reason: str = "") -> bool:
        """Any non-terminal state → cancelled, recording ``reason``."""
        def apply(action: Action) -> bool:
            if action.is_terminal:
                return False
            action.status = ActionStatus.CANCELLED
            action.cancel_reason = reason
            action.pause_reason = None
            return True
        return self._transition(action_id, "cancel", apply)

    def pause(self, action_id: str, reason: str = "") -> bool:
        """Set ``pause_reason`` on an in-progress action; status is unchanged."""
        def apply(action: Action) -> bool:
            if action.status != ActionStatus.IN_PROGRESS or action.is_paused:
                return False
            action.pause_reason = reason or "paused"
            return True
        return self._transition(action_id, "pause", apply)

    def resume(self, action_id: str) -> bool:
        """Clear ``pause_reason`` on a paused in-progress action."""
        def apply(action: Action) -> bool:
            if action.status != ActionStatus.IN_PROGRESS or not action.is_paused:
                return False
            action.pause_reason = None
            return True
        return self._transition(action_id, "resume", apply)
