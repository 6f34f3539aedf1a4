"""FastAPI app factory for the merchant enrichment API."""

from fastapi import FastAPI

from merchant_enrichment.api.merchants import router as merchants_router


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(title="Merchant Enrichment API", version="0.1")
    app.include_router(merchants_router)

    @app.get("/health", tags=["health"])
    def health() -> dict:
        return {"status": "ok"}

    return app


# For uvicorn, expose `app` at module level
app = create_app()
