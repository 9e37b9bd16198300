"""Refresh scheduling for omnitop."""

import logging
import random

from omnitop.models import Snapshot
from omnitop.monitor import MetricsProvider

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 1000
DEFAULT_JITTER_MS = 100
MIN_DELAY = 0.05  # Seconds


class SnapshotScheduler:
    """
    Drives the fetch side of each tick.

    The scheduler does not own a timer: the UI loop asks for next_delay(),
    arms a one-shot timer and calls tick() when it fires, re-arming it
    whatever the outcome. Jitter desynchronizes several dashboards polling
    the same host.
    """

    def __init__(
        self,
        provider: MetricsProvider,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        jitter_ms: int = DEFAULT_JITTER_MS,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the SnapshotScheduler.

        Args:
            provider: Metrics source, called once per tick.
            interval_ms: Base refresh interval in milliseconds.
            jitter_ms: Bound of the uniform random offset added to each delay.
            rng: Jitter source. Pass a seeded instance for reproducible delays.
        """
        self._provider = provider
        self._interval_ms = interval_ms
        self._jitter_ms = max(jitter_ms, 0)
        self._rng = rng or random.Random()
        self._current: Snapshot | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def current(self) -> Snapshot | None:
        """The last snapshot successfully fetched."""
        return self._current

    def next_delay(self) -> float:
        """Seconds until the next tick, jittered around the interval."""
        jitter = self._rng.randint(-self._jitter_ms, self._jitter_ms)
        return max((self._interval_ms + jitter) / 1000, MIN_DELAY)

    def tick(self) -> Snapshot | None:
        """
        Fetch one snapshot.

        Returns the new snapshot, or None if the provider failed; in that case
        the previous snapshot stays current.
        """
        self.ticks += 1
        try:
            snapshot = self._provider.get_snapshot()
        except Exception:
            # Stale data is preferable to a dead dashboard
            self.failures += 1
            logger.warning("metrics fetch failed, keeping previous snapshot", exc_info=True)
            return None
        self._current = snapshot
        return snapshot
