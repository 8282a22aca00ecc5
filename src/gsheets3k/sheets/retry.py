from dataclasses import dataclass, field, fields
from typing import Callable, Self, TypeVar
import logging
import time

from ..resources import GoogleWorkSpaceResourceBase
from ..exceptions import QuotaExceeded

log = logging.getLogger(__name__)

T = TypeVar("T")

@dataclass
class RetryPolicy(GoogleWorkSpaceResourceBase):
    """
    How a write that runs out of quota is retried.
    The first back-off is delay seconds, each following one is multiplied
    by multiplier and capped at max_delay.  After max_retries retries (so
    max_retries + 1 calls) the QuotaExceeded goes to the caller.  timeout,
    if set, bounds the total time spent including back-offs.
    """
    max_retries: int = field(default=5)
    delay: float = field(default=2.5)
    multiplier: float = field(default=2.0)
    max_delay: float = field(default=30.0)
    timeout: float|None = field(default=None)

    def __post_init__(self) -> None:
        self.fixup()

    def fixup(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, not {self.max_retries}")
        if self.delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, not {self.multiplier}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, not {self.timeout}")

    @classmethod
    def from_config(cls, config: dict) -> Self:
        """
        Build from a config dict (json, toml, ini section, ...).
        Keys that aren't policy fields are ignored, values are coerced
        since ini files hand everything over as strings.
        """
        policy = cls()
        kwargs = {}
        for f in fields(cls):
            v = config.get(f.name, None)
            if v is None:
                continue
            kwargs[f.name] = int(v) if f.name == 'max_retries' else float(v)
        policy.update_fields(**kwargs)
        return policy

    def delays(self):
        """The back-off before each retry, in order"""
        d = self.delay
        for _ in range(self.max_retries):
            yield min(d, self.max_delay)
            d *= self.multiplier

    def call(self, fn: Callable[[], T],
             sleep: Callable[[float], None] = time.sleep,
             clock: Callable[[], float] = time.monotonic,
             logger: logging.Logger|None = None,
             operation: str = "request") -> T:
        """
        Run fn, retrying on QuotaExceeded with back-off.  Any other error
        is raised straight away.
        """
        logger = logger or log
        start = clock()
        attempts = 0
        delays = self.delays()
        while True:
            attempts += 1
            try:
                return fn()
            except QuotaExceeded as e:
                wait = next(delays, None)
                if wait is None:
                    raise QuotaExceeded(f"{operation}: quota still exceeded after {attempts} attempts",
                                        e.status, e.reason, attempts) from e
                if self.timeout is not None and (clock() - start) + wait > self.timeout:
                    raise QuotaExceeded(f"{operation}: quota exceeded, retry would pass the {self.timeout}s timeout",
                                        e.status, e.reason, attempts) from e
                logger.warning("%s: quota exceeded (attempt %d), backing off for %.1f seconds...",
                               operation, attempts, wait)
                sleep(wait)
