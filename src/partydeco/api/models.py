"""Pydantic request models for the Party Decoration Studio API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation and OpenAPI documentation.  The
browser client speaks camelCase, so every field accepts its camelCase alias
as well as its Python name.

Field-level rules that need user-facing messages (theme required, name
length, UUID format) are enforced by :mod:`partydeco.core.validation` in the
route handlers rather than here, so the models stay permissive about empty
values.

Models
------
GenerateRequest
    Payload for ``POST /api/generate``.
ProjectRequest
    Payload for ``POST /api/projects`` and ``PATCH /api/projects/{id}``.
IterationCreateRequest
    Payload for ``POST /api/projects/{id}/iterations``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(_CamelModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        theme: Party theme.  Required; validated in the handler.
        details: Optional creative direction.
        decoration_types: Requested decoration types.  Unknown types are
            dropped; an empty selection falls back to the defaults.
        size: Image size as ``WIDTHxHEIGHT``.  Invalid values fall back to
            ``1024x1024``.
        aspect_ratio: Optional ratio as ``W:H``.  Invalid values are ignored.
        reference_images: Style reference images as data URLs.
        project_name: Optional project name included in the prompt.
        stream: When true the response is an SSE stream of per-image events.
    """

    theme: str | None = Field(
        default=None,
        description="Party theme (required).",
    )
    details: str | None = Field(
        default=None,
        description="Optional creative direction.",
    )
    decoration_types: list[str] | None = Field(
        default=None,
        description="Decoration types to generate, one image each.",
    )
    size: str | None = Field(
        default=None,
        description="Image size as WIDTHxHEIGHT (default 1024x1024).",
    )
    aspect_ratio: str | None = Field(
        default=None,
        description="Optional aspect ratio as W:H.",
    )
    reference_images: list[str] = Field(
        default_factory=list,
        description="Style reference images as base64 data URLs.",
    )
    project_name: str | None = Field(
        default=None,
        description="Optional project name for prompt context.",
    )
    stream: bool = Field(
        default=False,
        description="Stream results as Server-Sent Events.",
    )


class ProjectRequest(_CamelModel):
    """Request body for creating or renaming a project.

    Attributes:
        name: Project name (1-100 characters after trimming).
    """

    name: str | None = Field(
        default=None,
        description="Project name.",
    )


class IterationCreateRequest(_CamelModel):
    """Request body for saving a generation run to a project.

    ``image_decoration_types[i]`` labels ``images[i]``.
    """

    theme: str | None = Field(default=None, description="Party theme used for the run.")
    details: str | None = Field(default=None, description="Creative direction used.")
    decoration_types: list[str] = Field(
        default_factory=list,
        description="Decoration types requested for the run.",
    )
    image_count: int | None = Field(
        default=None,
        description="Number of images requested.  Defaults to len(images).",
    )
    size: str | None = Field(default=None, description="Image size used.")
    aspect_ratio: str | None = Field(default=None, description="Aspect ratio used.")
    prompt: str = Field(default="", description="Prompt summary for the run.")
    images: list[str] = Field(
        default_factory=list,
        description="Generated images as data URLs, in display order.",
    )
    image_decoration_types: list[str | None] | None = Field(
        default=None,
        description="Decoration type of each generated image.",
    )
    reference_images: list[str] = Field(
        default_factory=list,
        description="Reference images supplied for the run.",
    )
