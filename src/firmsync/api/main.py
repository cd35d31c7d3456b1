"""FastAPI application factory."""
from fastapi import FastAPI

from firmsync.api.routes import integrations


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""
    app = FastAPI(
        title="FirmSync Integrations API",
        description="Tenant integration sync status, triggers and health",
        version="0.1.0",
    )

    app.include_router(integrations.router, prefix="/integrations", tags=["integrations"])

    return app


# Module-level app instance for uvicorn
app = create_app()
