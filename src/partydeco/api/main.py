"""Party Decoration Studio: FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~partydeco.core.config.config` and is
  summarised for the frontend via ``GET /api/config``.
- **Image generation** fans out one provider request per decoration type
  through :class:`~partydeco.core.gateway.ImageGateway`.  Results are either
  collected into one JSON response or streamed as Server-Sent Events (see
  :mod:`partydeco.api.generation`).
- **Project persistence** uses :class:`~partydeco.core.database.PartyStore`,
  a small SQLite database of projects, iterations, and images.
- **Errors** are returned as ``{"error": message}`` JSON with 400 for
  validation failures, 404 for missing rows, and 500 otherwise.

Endpoints
---------
========  ==============================================  ==============================
Method    Path                                            Purpose
========  ==============================================  ==============================
GET       ``/api/config``                                 Decoration types and defaults
POST      ``/api/generate``                               Generate decorations (JSON/SSE)
GET       ``/api/projects``                               List projects
POST      ``/api/projects``                               Create a project
GET       ``/api/projects/{id}``                          Project with iterations
PATCH     ``/api/projects/{id}``                          Rename a project
DELETE    ``/api/projects/{id}``                          Delete a project
POST      ``/api/projects/{id}/iterations``               Save a generation run
DELETE    ``/api/projects/{id}/iterations/{iteration}``   Delete a generation run
========  ==============================================  ==============================

Usage
-----
CLI (installed entry point)::

    partydeco

Direct invocation::

    python -m partydeco.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from partydeco import __version__
from partydeco.api.generation import build_generation_plan, generate_batch, stream_batch
from partydeco.api.models import GenerateRequest, IterationCreateRequest, ProjectRequest
from partydeco.core.config import config
from partydeco.core.database import NotFoundError, PartyStore
from partydeco.core.decoration_prompts import (
    ALLOWED_DECORATION_TYPES,
    DEFAULT_DECORATIONS,
    MAX_IMAGE_COUNT,
)
from partydeco.core.gateway import ImageGateway
from partydeco.core.image_validation import filter_image_data_urls
from partydeco.core.validation import (
    DEFAULT_IMAGE_SIZE,
    ValidationError,
    resolve_aspect_ratio,
    resolve_image_size,
    validate_details,
    validate_name,
    validate_theme,
    validate_uuid,
)

logger = logging.getLogger(__name__)

GENERATION_ERROR_MESSAGE = "An error occurred while generating decorations"

# ---------------------------------------------------------------------------
# Application lifecycle: store and gateway setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Opens the :class:`PartyStore` (creating the schema if needed) and an
        :class:`ImageGateway`, and stores both on ``app.state``.

    On shutdown:
        Closes the gateway's HTTP client.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    app.state.store = PartyStore(config.database_path)
    app.state.gateway = ImageGateway(config)
    logger.info(f"Image gateway initialised for model {config.openrouter_model_id}.")

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await app.state.gateway.aclose()
    logger.info("Image gateway closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Party Decoration Studio",
    description="Generate printable party decorations and keep them in projects.",
    version=__version__,
    lifespan=lifespan,
)

# Allow cross-origin requests so the frontend can be served from a different
# port during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers.  Every error body is ``{"error": message}``.
# ---------------------------------------------------------------------------


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Flatten pydantic's error list into one readable message."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=400, content={"error": "; ".join(messages) or "Invalid request body"}
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "An unexpected error occurred"})


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config() -> dict:
    """Return the options the frontend needs to build its form.

    Returns:
        Dictionary with keys ``version``, ``decorationTypes``,
        ``defaultDecorations``, ``defaultSize``, ``maxImageCount``, and
        ``model``.
    """
    return {
        "version": __version__,
        "decorationTypes": list(ALLOWED_DECORATION_TYPES),
        "defaultDecorations": list(DEFAULT_DECORATIONS),
        "defaultSize": DEFAULT_IMAGE_SIZE,
        "maxImageCount": MAX_IMAGE_COUNT,
        "model": config.openrouter_model_id,
    }


@app.post("/api/generate")
async def generate_decorations(req: GenerateRequest, request: Request):
    """Generate one decoration image per selected decoration type.

    With ``stream`` false the response is ``{images, decorationTypes,
    prompts}`` once every image is ready; any provider failure fails the
    whole request.  With ``stream`` true the response is an SSE stream of
    per-image events terminated by ``data: [DONE]``.

    Raises:
        ValidationError: 400 for a missing theme or malformed details.
        HTTPException: 500 when the provider fails on the non-streaming path.
    """
    plan = build_generation_plan(req)
    gateway = request.app.state.gateway

    if req.stream:
        return StreamingResponse(
            stream_batch(gateway, plan),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    try:
        return await generate_batch(gateway, plan)
    except Exception as e:
        logger.error(f"Decoration generation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=GENERATION_ERROR_MESSAGE) from e


@app.get("/api/projects")
async def list_projects(request: Request) -> list[dict]:
    """Return all projects, newest first, each with ``iterationCount``."""
    return request.app.state.store.list_projects()


@app.post("/api/projects")
async def create_project(req: ProjectRequest, request: Request) -> dict:
    """Create an empty project.

    Raises:
        ValidationError: 400 if the name is missing, blank, or too long.
    """
    name = validate_name(req.name)
    return request.app.state.store.create_project(name)


@app.get("/api/projects/{project_id}")
async def get_project(project_id: str, request: Request) -> dict:
    """Return a project with its iterations and images.

    Raises:
        NotFoundError: 404 if the project does not exist.
    """
    return request.app.state.store.get_project(project_id)


@app.patch("/api/projects/{project_id}")
async def rename_project(project_id: str, req: ProjectRequest, request: Request) -> dict:
    """Rename a project and return the updated row."""
    name = validate_name(req.name)
    return request.app.state.store.rename_project(project_id, name)


@app.delete("/api/projects/{project_id}")
async def delete_project(project_id: str, request: Request) -> dict:
    """Delete a project together with all of its iterations and images."""
    request.app.state.store.delete_project(project_id)
    return {"success": True}


@app.post("/api/projects/{project_id}/iterations")
async def create_iteration(
    project_id: str, req: IterationCreateRequest, request: Request
) -> dict:
    """Save one generation run and its images to a project.

    Returns:
        Dictionary with ``success`` and the new ``iterationId``.

    Raises:
        ValidationError: 400 for a malformed project id or missing theme.
        NotFoundError: 404 if the project does not exist.
    """
    project_id = validate_uuid(project_id)
    theme = validate_theme(req.theme)
    decoration_types = [t for t in req.decoration_types if t in ALLOWED_DECORATION_TYPES]
    reference_images, _ = filter_image_data_urls(req.reference_images)

    iteration_id = request.app.state.store.create_iteration(
        project_id,
        theme=theme,
        details=validate_details(req.details),
        decoration_types=decoration_types,
        image_count=req.image_count if req.image_count is not None else len(req.images),
        size=resolve_image_size(req.size),
        aspect_ratio=resolve_aspect_ratio(req.aspect_ratio),
        prompt=req.prompt,
        images=req.images,
        image_decoration_types=req.image_decoration_types,
        reference_images=reference_images,
    )
    return {"success": True, "iterationId": iteration_id}


@app.delete("/api/projects/{project_id}/iterations/{iteration_id}")
async def delete_iteration(project_id: str, iteration_id: str, request: Request) -> dict:
    """Delete one iteration of a project.

    Raises:
        ValidationError: 400 if either id is not a UUID.
        NotFoundError: 404 if the iteration does not belong to the project.
    """
    request.app.state.store.delete_iteration(validate_uuid(project_id), validate_uuid(iteration_id))
    return {"success": True}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port, and log level from :data:`~partydeco.core.config.config`
    (``PARTYDECO_SERVER_HOST``, ``PARTYDECO_SERVER_PORT``,
    ``PARTYDECO_LOG_LEVEL``).  Defaults to ``0.0.0.0:7860``.

    This function is registered as the ``partydeco`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "partydeco.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
