"""Exceptions raised by the coaching pipeline and its AI session backends."""
from __future__ import annotations


class CoachError(Exception):
    """Base class for all live_coach errors."""


class SessionStartError(CoachError):
    """An AI session (or the session pair) could not be initialised."""


class SessionSendError(CoachError):
    """A payload could not be delivered to an AI session."""


class SessionClosedError(CoachError):
    """Work was attempted while no AI session is established."""


class RetrievalError(CoachError):
    """The retrieval backend failed. Always absorbed as "no context available"."""
