"""Error taxonomy for chapter ingestion."""
from typing import List, Optional


class IngestionError(Exception):
    """Base class for all ingestion errors."""


# Source-level (caught and aggregated per source)

class UnsupportedSource(IngestionError):
    """Locator host matches no registered source adapter."""

    def __init__(self, locator: str):
        self.locator = locator
        super().__init__(f"Unsupported source: {locator}")


class SourceUnavailable(IngestionError):
    """Network failure or unexpected layout while parsing a source."""


class SourceEmpty(IngestionError):
    """Source parsed fine but exposes no chapters."""


class NoSourceAvailable(IngestionError):
    """Every source of a job failed outright."""

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        self.message = message or "No sources were able to provide chapter information"
        super().__init__(self.message)

    def __str__(self):
        if not self.errors:
            return self.message
        return f"{self.message}: {'; '.join(self.errors)}"


# Chapter-level

class NoAssetsFound(IngestionError):
    """A chapter exposes no downloadable pages."""


class InvalidIdentifier(IngestionError):
    """Candidate chapter has no usable identifier and is skipped."""


class DuplicateChapter(IngestionError):
    """Catalog already holds a chapter with this identifier."""


# Collaborators / job management

class WorkNotFound(IngestionError):
    """Referenced work does not exist in the catalog."""


class JobNotFound(IngestionError):
    """Referenced ingestion job does not exist."""


class JobConflict(IngestionError):
    """Work already has an ingestion job."""


class InvalidJob(IngestionError):
    """Job definition is not usable (e.g. no sources)."""
