"""Entrypoint for running the reconciliation service with uvicorn."""

from fastapi import FastAPI

from services.reconciliation.app import app


def get_app() -> FastAPI:
    """Return the FastAPI app instance."""
    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "services.reconciliation.main:app",
        host="0.0.0.0",
        port=8003,
        reload=True,
    )
