"""Application services."""

from .enrichment import EnrichmentService, configure_enrichment_service, get_enrichment_service
from .lifecycle import EnrichmentController, EnrichmentGateway

__all__ = [
    "EnrichmentController",
    "EnrichmentGateway",
    "EnrichmentService",
    "configure_enrichment_service",
    "get_enrichment_service",
]
