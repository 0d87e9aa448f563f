"""Ingest session lifecycle and the commit step."""

from .commit import CommitResult, build_file_plan, commit_session
from .errors import InvalidTransitionError, SessionError
from .service import ALLOWED_TRANSITIONS, IngestSession, SessionPhase

__all__ = [
    "ALLOWED_TRANSITIONS",
    "CommitResult",
    "IngestSession",
    "InvalidTransitionError",
    "SessionError",
    "SessionPhase",
    "build_file_plan",
    "commit_session",
]
