import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sheetfill.application import EnrichmentService, configure_enrichment_service
from sheetfill.core.settings import Settings, load_settings
from sheetfill.infrastructure import ParallelClient
from sheetfill.routes import parallel


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Sheetfill Enrichment API", version="0.1.0")

    if settings.api_key:
        client = ParallelClient(settings.api_key, api_base=settings.api_base, timeout=settings.http_timeout)
        configure_enrichment_service(EnrichmentService(client))
    else:
        logging.getLogger(__name__).warning("PARALLEL_API_KEY is not set; enrichment routes will return 500")
        configure_enrichment_service(None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(parallel.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Sheetfill Enrichment API",
                "docs": "/docs",
                "enrich": "/api/parallel",
            }
        )

    return app


app = create_app()
