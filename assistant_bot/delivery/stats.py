from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from assistant_bot.delivery.models import DeliveryResult, DeliveryStatus, HealthIssue, HealthReport
from assistant_bot.utils.logging import configure_logger

logger = configure_logger("[STATS]", "cyan")

HISTORY_SIZE = 100

# Пороги проверки здоровья
MAX_FAILURE_RATE = 0.1
MAX_AVERAGE_ELAPSED_MS = 5000
MAX_RETRY_SHARE = 0.2


class DeliveryStats:
    """Running delivery counters plus averages over the last 100 deliveries."""

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._history: Deque[DeliveryResult] = deque(maxlen=history_size)
        self._lock = threading.Lock()
        self.messages_sent = 0
        self.duplicates = 0
        self.total_chunks = 0
        self.retry_count = 0
        self.fallback_count = 0

    def record(self, result: DeliveryResult) -> None:
        with self._lock:
            if result.status is DeliveryStatus.DUPLICATE:
                self.duplicates += 1
                return
            self._history.append(result)
            if result.chunks_delivered:
                self.messages_sent += 1
            self.total_chunks += result.chunks_delivered
            self.retry_count += result.retries_used
            self.fallback_count += result.fallbacks_used

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            recent = list(self._history)
            count = len(recent)
            return {
                "messages_sent": self.messages_sent,
                "duplicates": self.duplicates,
                "total_chunks": self.total_chunks,
                "retry_count": self.retry_count,
                "fallback_count": self.fallback_count,
                "average_chunks": sum(r.chunks_planned for r in recent) / count if count else 0.0,
                "failure_rate": sum(1 for r in recent if not r.success) / count if count else 0.0,
                "average_elapsed_ms": sum(r.elapsed_ms for r in recent) / count if count else 0.0,
            }

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
            self.messages_sent = self.duplicates = self.total_chunks = 0
            self.retry_count = self.fallback_count = 0

    def health(self, clock: Optional[Callable[[], float]] = None) -> HealthReport:
        """Evaluate the current counters: ``healthy`` or ``warning`` with the issues found."""
        stats = self.snapshot()
        issues: List[HealthIssue] = []
        if stats["failure_rate"] > MAX_FAILURE_RATE:
            issues.append(HealthIssue(
                type="error_rate",
                message=f"High failure rate: {round(stats['failure_rate'] * 100)}%",
            ))
        if stats["average_elapsed_ms"] > MAX_AVERAGE_ELAPSED_MS:
            issues.append(HealthIssue(
                type="performance",
                message=f"Slow deliveries: {round(stats['average_elapsed_ms'])}ms average",
            ))
        if stats["retry_count"] > stats["messages_sent"] * MAX_RETRY_SHARE:
            issues.append(HealthIssue(
                type="connectivity",
                message="High retry rate indicates connectivity issues",
            ))

        if issues:
            logger.warning(f"Health check found issues: {[i.message for i in issues]}")
        return HealthReport(
            status="warning" if issues else "healthy",
            checked_at=(clock or time.time)(),
            issues=issues,
            performance={
                "average_elapsed_ms": stats["average_elapsed_ms"],
                "failure_rate": stats["failure_rate"],
                "throughput": stats["messages_sent"],
            },
        )
