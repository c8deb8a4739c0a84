"""Delay policies applied between two runs of a tool agent."""


class BackoffStrategy:
    """Returns how long to wait before restart number `attempt` (1-based)."""

    def delay(self, attempt: int) -> float:
        raise NotImplementedError


class ConstantBackoff(BackoffStrategy):
    """The same delay before every restart, with no retry limit."""

    def __init__(self, seconds: float = 5) -> None:
        if seconds < 0:
            raise ValueError("Backoff delay cannot be negative")
        self.seconds = seconds

    def delay(self, attempt: int) -> float:
        return self.seconds

    def __repr__(self) -> str:
        return f"ConstantBackoff(seconds={self.seconds})"
