"""
In-memory registry of build observations, one entry per contribution key.

Phases: absent -> observing -> finished | cancelled; a finished or cancelled entry is replaced
when a later request begins observing the same key. All transitions run under one lock.
"""

import threading
from typing import Dict, Optional

from models import ContributionKey, ObservationPhase, Visa


class ObservationRegistry:
    def __init__(self):
        self._phases: Dict[ContributionKey, str] = {}
        self._results: Dict[ContributionKey, Visa] = {}
        self._lock = threading.RLock()

    def try_begin(self, key: ContributionKey) -> bool:
        """Register an observation; False if one is already active for the key."""
        with self._lock:
            if self._phases.get(key) == ObservationPhase.OBSERVING:
                return False
            self._phases[key] = ObservationPhase.OBSERVING
            self._results.pop(key, None)
            return True

    def status(self, key: ContributionKey) -> Optional[str]:
        with self._lock:
            return self._phases.get(key)

    def is_observing(self, key: ContributionKey) -> bool:
        return self.status(key) == ObservationPhase.OBSERVING

    def is_cancelled(self, key: ContributionKey) -> bool:
        return self.status(key) == ObservationPhase.CANCELLED

    def end(self, key: ContributionKey, result: Visa) -> bool:
        """Finish an active observation. A cancelled observation stays cancelled."""
        with self._lock:
            if self._phases.get(key) != ObservationPhase.OBSERVING:
                return False
            self._phases[key] = ObservationPhase.FINISHED
            self._results[key] = result
            return True

    def cancel(self, key: ContributionKey) -> bool:
        with self._lock:
            if self._phases.get(key) != ObservationPhase.OBSERVING:
                return False
            self._phases[key] = ObservationPhase.CANCELLED
            return True

    def rollback(self, key: ContributionKey) -> None:
        """Forget an observation that never started."""
        with self._lock:
            if self._phases.get(key) == ObservationPhase.OBSERVING:
                del self._phases[key]

    def result(self, key: ContributionKey) -> Optional[Visa]:
        with self._lock:
            return self._results.get(key)
