from __future__ import annotations


class IngestionError(RuntimeError):
    """Base class for failures raised by an ingestion run."""


class CatalogFetchError(IngestionError):
    """The mandatory catalog fetch failed or returned unparseable content."""


class ActivitySchemaError(IngestionError):
    """No known activity-feed schema candidate returned rows."""


class FeedUnavailableError(IngestionError):
    """An optional feed could not be reached; callers fall back."""


class GraphQLError(IngestionError):
    """A GraphQL response carried a non-empty ``errors`` array."""

    def __init__(self, errors: object) -> None:
        self.errors = errors
        super().__init__(f"GraphQL errors: {str(errors)[:300]}")
