"""File tree errors."""


class TreeError(Exception):
    """Base exception for file tree snapshot and overlay operations."""


class EmptyFileSetError(TreeError):
    """Raised when a session is started without any files to stage."""


class StartMarkerConflictError(TreeError):
    """Raised when one directory carries several start markers under the strict policy."""

    def __init__(self, directory: str, names: list[str]) -> None:
        self.directory = directory
        self.names = list(names)
        location = directory or "<root>"
        super().__init__(
            f"Multiple start files marked in {location}: {', '.join(self.names)}"
        )
