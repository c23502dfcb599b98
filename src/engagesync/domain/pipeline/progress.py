"""Progress and ETA reporting for long sequential loops."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)


def format_eta(seconds: float) -> str:
    total = max(0, round(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes}m {secs}s"


@dataclass(frozen=True, slots=True)
class ProgressReport:
    done: int
    total: int
    percent: float
    elapsed_seconds: float
    eta_seconds: float

    @property
    def eta(self) -> str:
        return format_eta(self.eta_seconds)


@dataclass(slots=True)
class ProgressTracker:
    """Report every ``step_percent`` of ``total``.

    Batches larger than ``large_batch_threshold`` also report every
    ``large_batch_every`` items. The ETA is the running average per item
    times the items left.
    """

    total: int
    label: str = "items"
    step_percent: int = 5
    large_batch_threshold: int = 2000
    large_batch_every: int = 100
    timer: Callable[[], float] = time.perf_counter
    done: int = 0
    _started: float | None = field(default=None, init=False)
    _last_bucket: int = field(default=0, init=False)

    def start(self) -> None:
        self._started = self.timer()

    def advance(self, **counters: int) -> ProgressReport | None:
        if self._started is None:
            self.start()
        self.done += 1
        if not self._should_report():
            return None

        started = self._started if self._started is not None else self.timer()
        elapsed = self.timer() - started
        average = elapsed / self.done
        report = ProgressReport(
            done=self.done,
            total=self.total,
            percent=self.done * 100 / self.total if self.total else 100.0,
            elapsed_seconds=elapsed,
            eta_seconds=average * max(0, self.total - self.done),
        )
        extras = "".join(f", {key}={value}" for key, value in counters.items())
        log.info(
            f"Progress {report.done}/{report.total} {self.label} ({report.percent:.1f}%), "
            f"ETA {report.eta}{extras}"
        )
        return report

    def _should_report(self) -> bool:
        if self.total <= 0 or self.done >= self.total:
            return True
        bucket = int(self.done * 100 / self.total) // max(1, self.step_percent)
        crossed = bucket > self._last_bucket
        if crossed:
            self._last_bucket = bucket
        periodic = (
            self.total > self.large_batch_threshold and self.done % self.large_batch_every == 0
        )
        return crossed or periodic
