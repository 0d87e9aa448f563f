"""Session errors."""


class SessionError(Exception):
    """Base exception for ingest session failures."""


class InvalidTransitionError(SessionError):
    """Raised when an operation is attempted in a phase that does not allow it."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from {current} to {target}.")
