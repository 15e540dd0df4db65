"""Access to the CLI's on-disk session index."""

from claudegate.sessions.store import SessionStore, SessionStoreError

__all__ = ["SessionStore", "SessionStoreError"]
