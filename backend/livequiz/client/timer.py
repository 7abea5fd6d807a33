import math
import time
from typing import Callable, Optional


class QuestionTimer:
    """Local countdown for the running question.

    Derived from the server's start time so every client agrees on the
    deadline no matter when it joined; it never waits on the server.
    """

    def __init__(self, time_limit: float, started_at: Optional[float] = None,
                 clock: Callable[[], float] = time.time):
        self.time_limit = max(0.0, float(time_limit or 0))
        self.clock = clock
        self.started_at = clock() if started_at is None else float(started_at)

    def elapsed(self) -> float:
        return max(0.0, self.clock() - self.started_at)

    def remaining(self) -> float:
        return min(self.time_limit, max(0.0, self.time_limit - self.elapsed()))

    def remaining_seconds(self) -> int:
        """Whole seconds left, as shown on the countdown."""
        return int(math.ceil(self.remaining()))

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0
