"""Decoration image generation: request planning, batch and SSE fan-out.

Every selected decoration type becomes one provider request with its own
type-specific prompt.  The requests run concurrently on the event loop:

- :func:`generate_batch` waits for all of them and returns one JSON payload.
  A single failure fails the whole batch.
- :func:`stream_batch` multiplexes the per-type provider streams into one
  SSE response.  Each image is forwarded as soon as it arrives, tagged with
  the index of its decoration type, and each failed type produces an error
  event for its index instead of failing the stream.  ``[DONE]`` follows
  once every type has finished.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Protocol

from partydeco.api.models import GenerateRequest
from partydeco.core.decoration_prompts import build_decoration_prompt, select_decoration_types
from partydeco.core.gateway import GatewayError
from partydeco.core.image_validation import filter_image_data_urls
from partydeco.core.streaming import encode_sse_done, encode_sse_event
from partydeco.core.validation import (
    NAME_MAX_LENGTH,
    resolve_aspect_ratio,
    resolve_image_size,
    sanitize_text,
    validate_details,
    validate_theme,
)

logger = logging.getLogger(__name__)


class ImageProvider(Protocol):
    """The subset of :class:`~partydeco.core.gateway.ImageGateway` used here."""

    async def generate_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        aspect_ratio: str | None = None,
        reference_images: Sequence[str] = (),
    ) -> str: ...

    def stream_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        aspect_ratio: str | None = None,
        reference_images: Sequence[str] = (),
    ) -> AsyncGenerator[str, None]: ...


@dataclass(frozen=True)
class GenerationPlan:
    """A validated generate request, ready to fan out."""

    theme: str
    decoration_types: list[str]
    size: str
    details: str | None = None
    project_name: str | None = None
    aspect_ratio: str | None = None
    reference_images: list[str] = field(default_factory=list)

    def prompt_for(self, decoration_type: str) -> str:
        return build_decoration_prompt(
            decoration_type,
            self.theme,
            self.details,
            self.project_name,
            len(self.reference_images),
        )


def build_generation_plan(req: GenerateRequest) -> GenerationPlan:
    """Validate a generate request and resolve every defaulted field.

    Raises:
        ValidationError: If the theme is missing or details are malformed.
    """
    theme = validate_theme(req.theme)
    details = validate_details(req.details)
    project_name = sanitize_text(req.project_name, NAME_MAX_LENGTH) if req.project_name else None
    reference_images, _ = filter_image_data_urls(req.reference_images)

    return GenerationPlan(
        theme=theme,
        details=details,
        project_name=project_name or None,
        decoration_types=select_decoration_types(req.decoration_types),
        reference_images=reference_images,
        size=resolve_image_size(req.size),
        aspect_ratio=resolve_aspect_ratio(req.aspect_ratio),
    )


async def generate_batch(provider: ImageProvider, plan: GenerationPlan) -> dict:
    """Generate one image per decoration type and wait for all of them.

    Returns:
        Dictionary with ``images``, ``decorationTypes`` and ``prompts``, all
        in decoration-type order.

    Raises:
        GatewayError: If any provider request fails.
    """
    prompts = [plan.prompt_for(decoration_type) for decoration_type in plan.decoration_types]
    logger.info(f"Generating {len(prompts)} decoration image(s) for theme {plan.theme!r}")

    images = await asyncio.gather(
        *(
            provider.generate_image(
                prompt,
                size=plan.size,
                aspect_ratio=plan.aspect_ratio,
                reference_images=plan.reference_images,
            )
            for prompt in prompts
        )
    )

    return {
        "images": list(images),
        "decorationTypes": list(plan.decoration_types),
        "prompts": prompts,
    }


async def _stream_one(
    provider: ImageProvider,
    plan: GenerationPlan,
    index: int,
    decoration_type: str,
    queue: asyncio.Queue,
) -> None:
    """Stream every image for one decoration type into *queue*.

    Always finishes by putting ``None`` so the consumer can count finished
    types.
    """
    try:
        prompt = plan.prompt_for(decoration_type)
        received = 0
        async with aclosing(
            provider.stream_image(
                prompt,
                size=plan.size,
                aspect_ratio=plan.aspect_ratio,
                reference_images=plan.reference_images,
            )
        ) as images:
            async for image in images:
                if not image:
                    continue
                received += 1
                queue.put_nowait(
                    {
                        "image": image,
                        "decorationType": decoration_type,
                        "index": index,
                        "prompt": prompt,
                    }
                )

        if not received:
            raise GatewayError(f"No image received for {decoration_type}")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning(f"Image {index} ({decoration_type}) failed: {e}", exc_info=True)
        queue.put_nowait(
            {
                "error": str(e) or "Failed to generate image",
                "decorationType": decoration_type,
                "index": index,
            }
        )
    finally:
        queue.put_nowait(None)


async def stream_batch(provider: ImageProvider, plan: GenerationPlan) -> AsyncIterator[str]:
    """Yield SSE events for a batch as the individual images finish.

    Events are ``{image, decorationType, index, prompt}`` for successes and
    ``{error, decorationType, index}`` for failures, followed by ``[DONE]``.
    If the consumer stops iterating (client disconnect) the outstanding
    provider requests are cancelled.
    """
    queue: asyncio.Queue = asyncio.Queue()
    tasks = [
        asyncio.create_task(_stream_one(provider, plan, index, decoration_type, queue))
        for index, decoration_type in enumerate(plan.decoration_types)
    ]
    logger.info(f"Streaming {len(tasks)} decoration image(s) for theme {plan.theme!r}")

    try:
        remaining = len(tasks)
        while remaining:
            event = await queue.get()
            if event is None:
                remaining -= 1
                continue
            yield encode_sse_event(event)
        yield encode_sse_done()
    except Exception as e:
        logger.error(f"Streaming generation failed: {e}", exc_info=True)
        yield encode_sse_event({"error": str(e) or "Streaming error"})
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
