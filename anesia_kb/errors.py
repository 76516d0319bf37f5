"""
Error taxonomy for the content synchronization engine.

Every error carries:
- type:    category identifier (source_unavailable / fallback_unavailable / ...)
- code:    machine-readable code surfaced to consumers
- message: human-readable description
- detail:  optional extra context (dict / list / None)

Only SourceUnavailable is allowed to leave the load pipeline; everything else
is absorbed at its component boundary.
"""


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""

    type = 'error'
    code = 'UNKNOWN_ERROR'

    def __init__(self, message, code=None, detail=None):
        self.message = message
        if code is not None:
            self.code = code
        self.detail = detail
        super().__init__(message)


class SourceUnavailable(KnowledgeBaseError):
    """Remote store empty or unreachable for the primary entity type."""

    type = 'source_unavailable'
    code = 'data_load_error'


class FallbackUnavailable(KnowledgeBaseError):
    """A bundled document could not be read or parsed."""

    type = 'fallback_unavailable'
    code = 'FALLBACK_UNAVAILABLE'


class ValidationFailure(KnowledgeBaseError):
    """A single record failed schema validation."""

    type = 'validation_failure'
    code = 'VALIDATION_FAILURE'


class CacheWriteFailure(KnowledgeBaseError):
    """Snapshot could not be serialized or persisted."""

    type = 'cache_write_failure'
    code = 'CACHE_WRITE_FAILURE'


class CacheReadFailure(KnowledgeBaseError):
    """Snapshot envelope is missing fields or unreadable."""

    type = 'cache_read_failure'
    code = 'CACHE_READ_FAILURE'
