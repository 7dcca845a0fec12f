from __future__ import annotations

import structlog

from sentinel.models import PingResult, Transition, TransitionEvent
from sentinel.storage import PingStore


logger = structlog.get_logger(__name__)


def classify_transition(prior: PingResult | None, observed_ok: bool) -> Transition:
    """
    Edge detection between the previous stored outcome and a new one.

    No history counts as "was up", so only a failing probe can produce an edge
    on first observation. Repeated failures or repeated successes never do.
    """
    was_up = prior is None or bool(prior.success)
    was_down = prior is not None and not bool(prior.success)
    is_up = bool(observed_ok)
    is_down = not is_up

    if is_down and was_up:
        return Transition.BECAME_DOWN
    if is_up and was_down:
        return Transition.BECAME_UP
    return Transition.NONE


class TransitionTracker:
    """Derives health transitions from the ping log; state lives only in the store."""

    def __init__(self, store: PingStore):
        self.store = store

    def classify(self, monitor_id: str, new_result: PingResult) -> Transition:
        """Classify `new_result` against the stored history. Call before appending it."""
        prior = self.store.most_recent(monitor_id)
        return classify_transition(prior, new_result.success)

    def record(self, result: PingResult) -> TransitionEvent:
        """Classify and append in one atomic store step."""
        prior, stored = self.store.record(result)
        transition = classify_transition(prior, stored.success)
        if transition is not Transition.NONE:
            logger.info(
                "Monitor state changed",
                monitor_id=stored.monitor_id,
                transition=transition.value,
                status_code=stored.status_code,
            )
        return TransitionEvent(transition=transition, result=stored, prior=prior)
