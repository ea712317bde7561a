import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Tuple

from ..ports.channel_sender import SendResult
from ...core.config import settings

logger = logging.getLogger(__name__)


class BackoffStrategy(str, Enum):
    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass
class RetryPolicy:
    max_retries: int = 3
    retry_intervals: List[float] = field(default_factory=lambda: [1.0, 5.0, 15.0])
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL

    @classmethod
    def from_config(cls, config: dict) -> "RetryPolicy":
        return cls(
            max_retries=int(config.get("max_retries", 3)),
            retry_intervals=[float(v) for v in config.get("retry_intervals", [1, 5, 15])],
            backoff_strategy=BackoffStrategy(config.get("backoff_strategy", "exponential")),
        )

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            retry_intervals=settings.retry_intervals_list or [1.0],
            backoff_strategy=BackoffStrategy(settings.RETRY_BACKOFF_STRATEGY),
        )

    def delays(self) -> List[float]:
        """Seconds to wait before each retry, one entry per retry."""
        if self.max_retries <= 0:
            return []
        intervals = self.retry_intervals or [1.0]
        base = intervals[0]
        out = []
        for attempt in range(self.max_retries):
            if self.backoff_strategy == BackoffStrategy.FIXED:
                out.append(base)
            elif attempt < len(intervals):
                out.append(intervals[attempt])
            elif self.backoff_strategy == BackoffStrategy.LINEAR:
                out.append(base * (attempt + 1))
            else:
                out.append(intervals[-1] * 2 ** (attempt - len(intervals) + 1))
        return out

    def run(self, operation: Callable[[], SendResult], sleep: Callable[[float], None] = time.sleep, label: str = "") -> Tuple[SendResult, int]:
        """Call ``operation`` until it succeeds, fails permanently, or retries run out."""
        result = operation()
        attempts = 1
        for delay in self.delays():
            if result.success or not result.retryable:
                break
            logger.info(f"Retrying {label} in {delay}s (attempt {attempts + 1}): {result.error}")
            sleep(delay)
            result = operation()
            attempts += 1
        return result, attempts
