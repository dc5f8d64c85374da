"""Infrastructure layer exports."""

from .gateway import EnrichmentAPIClient
from .parallel import ParallelAPIError, ParallelClient

__all__ = [
    "EnrichmentAPIClient",
    "ParallelAPIError",
    "ParallelClient",
]
