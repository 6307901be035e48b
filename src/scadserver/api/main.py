"""OpenSCAD HTTP API — FastAPI application.

This module defines the FastAPI ``app`` instance, the REST routes, the
translation of core errors into ``{"error", "message"}`` bodies, and the
``main()`` CLI function that launches the uvicorn server.

Architecture
------------
The application is stateless:

- **Configuration** comes from ``SCADSRV_*`` environment variables via
  :mod:`scadserver.core.config`.
- **Rendering** is delegated to
  :class:`~scadserver.core.openscad.OpenSCADService`, provided through the
  :func:`get_openscad_service` dependency so tests can substitute it.
- **Interactive documentation** is FastAPI's built-in Swagger UI at
  ``/docs``.

Endpoints
---------
========  ==========================  =========================================
Method    Path                        Purpose
========  ==========================  =========================================
GET       ``/health``                 Liveness probe with build metadata
POST      ``/openscad/v1/export``     Render a script to a file format
POST      ``/openscad/v1/summary``    Diagnostic summary of a script
========  ==========================  =========================================

``/export`` and ``/summary`` are served as unversioned aliases.

Usage
-----
CLI (installed entry point)::

    scad-server

Direct invocation::

    python -m scadserver.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from scadserver import __version__
from scadserver.api.models import ErrorResponse, ExportRequest, SummaryRequest, SummaryResponse
from scadserver.core.config import config
from scadserver.core.errors import InvalidFormatError, ScadServerError
from scadserver.core.openscad import OpenSCADService

logger = logging.getLogger(__name__)


@lru_cache
def get_openscad_service() -> OpenSCADService:
    """Return the process-wide :class:`OpenSCADService` built from ``config``."""
    return OpenSCADService.from_config(config)


# ---------------------------------------------------------------------------
# Application lifecycle: build metadata and openscad availability probe.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log build metadata and verify openscad before serving requests.

    Raises:
        RuntimeError: If ``check_openscad_on_startup`` is enabled and
            ``openscad --version`` cannot be run.
    """
    logger.info(
        "Starting scad-server %s (commit: %s, tag: %s)",
        __version__,
        config.build_commit,
        config.build_tag,
    )

    if config.check_openscad_on_startup:
        provider = app.dependency_overrides.get(get_openscad_service, get_openscad_service)
        try:
            provider().check_available()
        except ScadServerError as exc:
            raise RuntimeError(f"OpenSCAD not available: {exc}") from exc

    yield


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="OpenSCAD HTTP API",
    description=(
        "RESTful HTTP API that provides headless access to core OpenSCAD "
        "functionality: file export and summary generation."
    ),
    version=__version__,
    debug=config.mode == "debug",
    lifespan=lifespan,
)


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report body validation failures as 400 ``invalid request``."""
    message = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return _error_response(400, "invalid request", message)


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------

router = APIRouter()


@router.post(
    "/export",
    response_class=Response,
    responses={
        200: {"description": "Exported file", "content": {"application/octet-stream": {}}},
        400: {"model": ErrorResponse, "description": "Bad Request"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
    tags=["export"],
)
def export(
    req: ExportRequest,
    service: OpenSCADService = Depends(get_openscad_service),
) -> Response:
    """Export SCAD content to PNG, STL, SVG, PDF, 3MF, WebP or AVIF.

    The route is synchronous so FastAPI runs it in its worker thread pool
    while openscad executes.

    Returns:
        The rendered file with the content type of the requested format.
        Unsupported formats yield 400, every other failure 500.
    """
    try:
        data, content_type = service.export(req.scad_content, req.format, req.options)
    except InvalidFormatError as exc:
        logger.warning("OpenSCAD export rejected: %s", exc)
        return _error_response(400, "export failed", str(exc))
    except ScadServerError as exc:
        logger.error("OpenSCAD export error: %s", exc)
        return _error_response(500, "export failed", str(exc))

    return Response(content=data, media_type=content_type)


@router.post(
    "/summary",
    response_model=SummaryResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
    tags=["summary"],
)
def summary(
    req: SummaryRequest,
    service: OpenSCADService = Depends(get_openscad_service),
) -> SummaryResponse | JSONResponse:
    """Generate summary information for SCAD content.

    Returns:
        ``{"summary": {...}}`` keyed by diagnostic category, or a 500 error
        body when openscad or summary parsing fails.
    """
    try:
        result = service.summary(req.scad_content, req.summary_type)
    except ScadServerError as exc:
        logger.error("OpenSCAD summary error: %s", exc)
        return _error_response(500, "summary generation failed", str(exc))

    return SummaryResponse(summary=result)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Report liveness together with the running build."""
    return {
        "status": "ok",
        "version": __version__,
        "commit": config.build_commit,
        "tag": config.build_tag,
    }


app.include_router(router, prefix="/openscad/v1")
app.include_router(router, include_in_schema=False)


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Configure logging and launch the uvicorn ASGI server.

    Host and port come from :data:`~scadserver.core.config.config`
    (``SCADSRV_SERVER_HOST`` and ``SCADSRV_PORT``), defaulting to
    ``0.0.0.0:8000``.  ``SCADSRV_MODE=debug`` switches to DEBUG logging.

    Registered as the ``scad-server`` console script in ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.effective_log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "scadserver.api.main:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.effective_log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
