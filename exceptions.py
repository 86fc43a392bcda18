"""
Game exceptions.

Kept in one place so the API layer can map them to HTTP responses uniformly.
"""


class PictionaryError(Exception):
    """Base class for all game errors."""
    pass


class ContentFetchError(PictionaryError, RuntimeError):
    """The content provider failed or returned structurally invalid content."""
    pass


class SessionNotFound(PictionaryError, KeyError):
    """Unknown session id."""
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class InvalidStateTransition(PictionaryError):
    """The requested action is not allowed in the current round status."""
    pass
