"""Session persistence."""

from taskcli.persistence.store import SessionRecord, SessionStore

__all__ = ["SessionRecord", "SessionStore"]
