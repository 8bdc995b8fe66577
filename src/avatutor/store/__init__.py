"""Session, emotion and animation persistence."""

from avatutor.store.session_store import InMemorySessionStore, SessionStore

__all__ = ["InMemorySessionStore", "SessionStore"]
