# src/avatutor/core/errors.py
"""
Exception types shared across the pipeline.

Kept in core/ so adapters, the orchestrator and the API layer can all import
them without circular imports.
"""
from __future__ import annotations


class AvatutorError(Exception):
    """Base class for everything this package raises on purpose."""


# ── Session admission ─────────────────────────────────────────────────────────


class SessionError(AvatutorError):
    def __init__(self, session_id: str, message: str) -> None:
        self.session_id = session_id
        super().__init__(message)


class SessionNotFound(SessionError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session '{session_id}' not found or inactive")


class SessionBusy(SessionError):
    """A turn is generating and the session is configured to refuse interruption."""

    def __init__(self, session_id: str, turn_id: str) -> None:
        self.turn_id = turn_id
        super().__init__(session_id, f"Session '{session_id}' is busy with turn '{turn_id}'")


class InvalidMessage(AvatutorError):
    """User input the pipeline refuses to send upstream (empty, whitespace only)."""


# ── Providers ─────────────────────────────────────────────────────────────────


class ProviderError(AvatutorError):
    """
    Transient upstream failure (network, 5xx, rate limit).
    Retried with backoff against the same provider.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class MalformedResponseError(ProviderError):
    """
    Provider answered but nothing usable came out of it (unparseable payload,
    empty completion). Retrying the same provider is pointless.
    """


class SynthesisError(AvatutorError):
    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")
