"""Exceptions raised by the indexing and search services."""


class NotesIndexError(Exception):
    """Base exception for notes-index errors."""


class EmbeddingError(NotesIndexError):
    """Embedding model could not be initialized or failed to embed text."""


class SourceError(NotesIndexError):
    """Note source could not be listed or read."""


class PlanningError(NotesIndexError):
    """A sync plan could not be computed; nothing was changed."""


class JobStateError(NotesIndexError):
    """Illegal indexing job transition (decreasing counters, double completion)."""


class SearchError(NotesIndexError):
    """A search could not be executed; no partial results are returned."""

    def __init__(self, message: str, invalid_input: bool = False):
        super().__init__(message)
        self.invalid_input = invalid_input
