from __future__ import annotations


class EnrichmentError(Exception):
    """Base class for failures raised by the enrichment core."""


class SubmissionError(EnrichmentError):
    """Raised when a task group or its runs could not be created."""


class ConfigError(SubmissionError):
    """Raised when a required credential or setting is missing."""


class TransportError(EnrichmentError):
    """Raised when the event stream cannot be opened or breaks mid-run."""


class RunInProgressError(EnrichmentError):
    """Raised when a run is requested while another one is still active."""
