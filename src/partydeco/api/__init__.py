"""Party Decoration Studio: FastAPI REST API layer.

This package contains the FastAPI application, Pydantic request models, and
the generation fan-out used by ``POST /api/generate``.

Modules
-------
main
    FastAPI application with all route handlers and the ``main()`` CLI
    entry point.
models
    Pydantic models for API request validation.
generation
    One provider request per decoration type, collected as JSON or
    multiplexed into a Server-Sent-Events stream.
"""
