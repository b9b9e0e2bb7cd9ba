import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded retry with backoff.

    max_attempts:
        Total number of tries, including the first one.
    delay, backoff, max_delay:
        Wait before try n+1 is ``min(delay * backoff**(n-1), max_delay)``.
    """

    max_attempts: int
    delay: float = 1.0
    backoff: float = 1.0
    max_delay: float | None = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay < 0:
            raise ValueError(f"delay must be >= 0, got {self.delay}")

    @classmethod
    def from_config(cls, section: dict, *, attempts_key: str = "max_attempts") -> "RetryPolicy":
        return cls(
            max_attempts=int(section[attempts_key]),
            delay=float(section.get("delay", 1.0)),
            backoff=float(section.get("backoff", 1.0)),
            max_delay=section.get("max_delay"),
        )

    def delay_for(self, attempt: int) -> float:
        d = self.delay * self.backoff ** (attempt - 1)
        if self.max_delay is not None:
            d = min(d, float(self.max_delay))
        return d

    async def wait(self, attempt: int, sleep: Sleep = asyncio.sleep) -> None:
        """Sleep between try ``attempt`` and the next one."""
        await sleep(self.delay_for(attempt))
