"""Exception types shared by the storage, retrieval and graph layers."""


class KnowledgeBaseError(Exception):
    """Base class for knowledge base errors."""


class InvalidInputError(KnowledgeBaseError, ValueError):
    """Malformed vector, unknown vocabulary string, or self-referential link."""


class NotFoundError(KnowledgeBaseError, LookupError):
    """A write path referenced a video or claim that does not exist."""
