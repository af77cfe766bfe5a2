"""Domain error taxonomy.

Routes translate these into HTTP responses (see ``backend.app.main``); the
provider errors are consumed by the answer orchestrator and mostly never reach
the caller.
"""


class KnowledgeBaseError(Exception):
    """Base class for all domain errors."""

    pass


class InvalidInputError(KnowledgeBaseError):
    """Request rejected before any retrieval work (empty question, no tenant)."""

    pass


class NotFoundError(KnowledgeBaseError):
    """Resource absent in the caller's tenant, or not visible to the caller."""

    pass


class PermissionDeniedError(KnowledgeBaseError):
    """Caller lacks the privilege required for an action."""

    pass


class ProcessingError(KnowledgeBaseError):
    """Text extraction or chunking failed during ingestion."""

    pass


class SearchError(KnowledgeBaseError):
    """The document store failed while running a search."""

    pass


class ProviderError(KnowledgeBaseError):
    """Base class for text-generation provider failures."""

    def __init__(self, message: str, *, model: str | None = None, status: int | None = None):
        super().__init__(message)
        self.model = model
        self.status = status


class ProviderConfigurationError(ProviderError):
    """No provider credential is configured."""

    pass


class ProviderTransientError(ProviderError):
    """Failure worth retrying on the next model in the fallback chain."""

    pass


class ProviderRateLimitError(ProviderTransientError):
    """Rate limit or quota exhausted (HTTP 429)."""

    pass


class ProviderModelNotFoundError(ProviderTransientError):
    """Requested model does not exist or is unavailable (HTTP 404)."""

    pass


class ProviderTimeoutError(ProviderTransientError):
    """Provider call exceeded its timeout."""

    pass


class ProviderFatalError(ProviderError):
    """Failure that aborts the fallback chain immediately."""

    pass


class ProviderAuthError(ProviderFatalError):
    """Credential was rejected by the provider."""

    pass


class ProviderUnavailableError(ProviderFatalError):
    """Provider endpoint could not be reached."""

    pass
