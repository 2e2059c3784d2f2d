"""HTTP client for the chat-completions image provider.

This module provides :class:`ImageGateway`, the only place that knows the
provider's wire format.  The rest of the application deals in prompts and
``data:`` URLs.

Key Responsibilities
--------------------
- **Request shaping**: a system message establishing the party stylist
  persona, and a user message that is either the plain prompt or, when
  reference images are supplied, a list of text and ``image_url`` parts.
- **Authentication**: bearer token from
  :attr:`~partydeco.core.config.PartyDecoConfig.openrouter_api_key`.  A
  missing key fails before any network I/O.
- **Image extraction**: providers report images in several shapes
  (``data[].b64_json``, ``choices[].message.images``, content parts,
  Gemini ``inline_data``).  All of them are normalised to data URLs;
  remote URLs are downloaded.
- **Streaming**: with ``stream: true`` the provider answers with SSE.
  Chunks are parsed incrementally and every image found in a ``delta`` is
  yielded as soon as it arrives.

Usage
-----
::

    gateway = ImageGateway(config)
    image = await gateway.generate_image(prompt, size="1024x1024")

    async for image in gateway.stream_image(prompt, size="1024x1024"):
        ...

    await gateway.aclose()
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import AsyncIterator, Iterator, Sequence

import httpx

from partydeco.core.config import PartyDecoConfig
from partydeco.core.streaming import DONE_SENTINEL, SSELineBuffer

logger = logging.getLogger(__name__)

SYSTEM_MESSAGE = (
    "You are a playful party stylist that designs printable kids party decorations. "
    "Provide only finished artwork output that can be turned into toppers, banners, or signage."
)


class GatewayError(Exception):
    """The image provider rejected a request or returned no usable image.

    Attributes:
        status_code: HTTP status returned by the provider, when known.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayConfigurationError(GatewayError):
    """The gateway cannot make requests because configuration is missing."""


def ensure_data_url(value: str) -> str:
    """Treat bare base64 strings as PNG data URLs."""
    return value if value.startswith("data:") else f"data:image/png;base64,{value.strip()}"


def _image_from_part(part: object) -> str | None:
    """Return the data URL or remote URL carried by one content part."""
    if not isinstance(part, dict):
        return None

    part_type = part.get("type")

    if part_type in ("output_warning", "warning"):
        text = part.get("text") or part.get("message")
        if isinstance(text, str):
            logger.warning(f"Image provider warning: {text}")
        return None

    if part_type == "image_url":
        image_url = part.get("image_url")
        url = image_url.get("url") if isinstance(image_url, dict) else part.get("imageUrl")
        return url if isinstance(url, str) and url else None

    if part_type in ("image", "output_image"):
        for key in ("b64_json", "base64", "data"):
            value = part.get(key)
            if isinstance(value, str) and value:
                return f"data:image/png;base64,{value}"
        url = part.get("url")
        if isinstance(url, str) and url:
            return url

    if part_type == "image_base64":
        value = part.get("image_base64")
        if isinstance(value, str) and value:
            return f"data:image/png;base64,{value}"

    # Gemini reports images as inline_data (snake case) or inlineData.
    for key, mime_key in (("inline_data", "mime_type"), ("inlineData", "mimeType")):
        inline = part.get(key)
        if isinstance(inline, dict) and isinstance(inline.get("data"), str):
            mime_type = inline.get(mime_key) or "image/png"
            return f"data:{mime_type};base64,{inline['data']}"

    return None


def _iter_content_images(content: object) -> Iterator[str]:
    if isinstance(content, str):
        if content.startswith("data:"):
            yield content
    elif isinstance(content, list):
        for part in content:
            image = _image_from_part(part)
            if image:
                yield image
    else:
        image = _image_from_part(content)
        if image:
            yield image


def iter_response_images(payload: object) -> Iterator[str]:
    """Yield every image reference found in a provider response or stream chunk.

    Values are data URLs or remote ``http(s)`` URLs, in payload order.
    """
    if not isinstance(payload, dict):
        return

    data = payload.get("data")
    if isinstance(data, list):
        for entry in data:
            if not isinstance(entry, dict):
                continue
            if isinstance(entry.get("b64_json"), str):
                yield f"data:image/png;base64,{entry['b64_json']}"
            elif isinstance(entry.get("url"), str):
                yield entry["url"]

    choices = payload.get("choices")
    if not isinstance(choices, list):
        return

    for choice in choices:
        if not isinstance(choice, dict):
            continue
        # Full responses carry "message"; streamed chunks carry "delta".
        for key in ("message", "delta"):
            message = choice.get(key)
            if not isinstance(message, dict):
                continue
            images = message.get("images")
            if isinstance(images, list):
                for part in images:
                    image = _image_from_part(part)
                    if image:
                        yield image
            yield from _iter_content_images(message.get("content"))
        yield from _iter_content_images(choice.get("content"))


def _error_message(parsed: object, status_code: int) -> str:
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str) and error:
            return error
        if isinstance(parsed.get("message"), str):
            return parsed["message"]
    return f"Image generation failed ({status_code})."


class ImageGateway:
    """Async client for the chat-completions image provider.

    Attributes:
        _config (PartyDecoConfig):
            Provider URL, model, credentials, and timeout.
        _client (httpx.AsyncClient):
            Shared HTTP client.  Created on demand unless one is injected.
    """

    def __init__(self, config: PartyDecoConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout)

    @property
    def model_id(self) -> str:
        return self._config.openrouter_model_id

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Request construction.
    # ------------------------------------------------------------------

    def build_headers(self) -> dict[str, str]:
        """Return request headers including the bearer token.

        Raises:
            GatewayConfigurationError: If no API key is configured.
        """
        api_key = self._config.openrouter_api_key
        if not api_key:
            raise GatewayConfigurationError(
                "OPENROUTER_API_KEY is not configured. Add it to your environment variables."
            )

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        if self._config.openrouter_site_url:
            headers["HTTP-Referer"] = self._config.openrouter_site_url
        if self._config.openrouter_app_name:
            headers["X-Title"] = self._config.openrouter_app_name
        return headers

    def build_request_body(
        self,
        prompt: str,
        *,
        size: str | None = None,
        aspect_ratio: str | None = None,
        reference_images: Sequence[str] = (),
        stream: bool = False,
    ) -> dict:
        """Assemble the chat-completions request body for one image."""
        references = [ensure_data_url(image) for image in reference_images if image]

        user_content: str | list[dict]
        if references:
            user_content = [{"type": "text", "text": prompt}] + [
                {"type": "image_url", "image_url": {"url": image}} for image in references
            ]
        else:
            user_content = prompt

        body: dict = {
            "model": self._config.openrouter_model_id,
            "messages": [
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": user_content},
            ],
            "modalities": ["image", "text"],
        }
        if size:
            body["size"] = size
        if aspect_ratio:
            body["aspect_ratio"] = aspect_ratio
        if stream:
            body["stream"] = True
        return body

    # ------------------------------------------------------------------
    # Image normalisation.
    # ------------------------------------------------------------------

    async def fetch_as_data_url(self, url: str) -> str:
        """Download a remote image and return it as a data URL.

        Raises:
            GatewayError: If the download fails.
        """
        response = await self._client.get(url)
        if response.status_code >= 400:
            raise GatewayError(
                f"Unable to download generated image ({response.status_code}) from {url}",
                status_code=response.status_code,
            )
        mime_type = response.headers.get("content-type", "image/png").split(";")[0]
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"

    async def _to_data_url(self, image: str) -> str:
        if image.startswith("data:"):
            return image
        return await self.fetch_as_data_url(image)

    async def collect_images(self, payload: object, limit: int = 1) -> tuple[list[str], list[str]]:
        """Extract up to *limit* images from a provider response as data URLs.

        Returns:
            Tuple of ``(data_urls, warnings)``.  Failed downloads become
            warnings rather than errors.
        """
        images: list[str] = []
        warnings: list[str] = []

        for candidate in iter_response_images(payload):
            try:
                images.append(await self._to_data_url(candidate))
            except (GatewayError, httpx.HTTPError) as e:
                warnings.append(str(e) or f"Failed to download generated image from {candidate}")
                continue
            if len(images) >= limit:
                break

        return images, warnings

    # ------------------------------------------------------------------
    # Generation.
    # ------------------------------------------------------------------

    async def generate_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        aspect_ratio: str | None = None,
        reference_images: Sequence[str] = (),
    ) -> str:
        """Request one image and wait for the complete response.

        Returns:
            The generated image as a data URL.

        Raises:
            GatewayConfigurationError: If the API key is missing.
            GatewayError: On provider errors or an empty image response.
        """
        headers = self.build_headers()
        body = self.build_request_body(
            prompt, size=size, aspect_ratio=aspect_ratio, reference_images=reference_images
        )
        logger.info(
            f"Requesting image from {self.model_id} "
            f"(size={size}, references={len(reference_images)})"
        )

        response = await self._client.post(self._config.openrouter_api_url, headers=headers, json=body)
        text = response.text
        try:
            parsed = json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise GatewayError(
                f"Image provider responded with non-JSON payload "
                f"(status {response.status_code}): {text[:200]}",
                status_code=response.status_code,
            ) from e

        if response.status_code >= 400:
            raise GatewayError(
                _error_message(parsed, response.status_code), status_code=response.status_code
            )

        images, warnings = await self.collect_images(parsed, limit=1)
        for warning in warnings:
            logger.warning(f"Image provider warning: {warning}")

        if not images:
            logger.debug(f"Provider response without image: {text[:500]}")
            raise GatewayError("Image provider returned an empty image response.")

        return images[0]

    async def stream_image(
        self,
        prompt: str,
        *,
        size: str | None = None,
        aspect_ratio: str | None = None,
        reference_images: Sequence[str] = (),
    ) -> AsyncIterator[str]:
        """Request one image over SSE and yield images as they arrive.

        A provider that ignores ``stream: true`` and answers with plain JSON
        is handled by extracting the images from the full body.

        Yields:
            Generated images as data URLs.

        Raises:
            GatewayConfigurationError: If the API key is missing.
            GatewayError: On an error status or an in-stream error chunk.
        """
        headers = self.build_headers()
        headers["Accept"] = "text/event-stream"
        body = self.build_request_body(
            prompt,
            size=size,
            aspect_ratio=aspect_ratio,
            reference_images=reference_images,
            stream=True,
        )
        logger.info(f"Streaming image from {self.model_id} (size={size})")

        async with self._client.stream(
            "POST", self._config.openrouter_api_url, headers=headers, json=body
        ) as response:
            if response.status_code >= 400:
                raw = await response.aread()
                try:
                    parsed = json.loads(raw) if raw else {}
                except json.JSONDecodeError:
                    parsed = {}
                raise GatewayError(
                    _error_message(parsed, response.status_code), status_code=response.status_code
                )

            if "text/event-stream" not in response.headers.get("content-type", ""):
                raw = await response.aread()
                try:
                    parsed = json.loads(raw) if raw else {}
                except json.JSONDecodeError as e:
                    raise GatewayError("Image provider responded with a non-JSON payload") from e
                images, _ = await self.collect_images(parsed, limit=1)
                for image in images:
                    yield image
                return

            lines = SSELineBuffer()
            async for text in response.aiter_text():
                for payload in lines.feed(text):
                    if payload.strip() == DONE_SENTINEL:
                        return
                    async for image in self._images_from_chunk(payload):
                        yield image

            for payload in lines.flush():
                if payload.strip() == DONE_SENTINEL:
                    return
                async for image in self._images_from_chunk(payload):
                    yield image

    async def _images_from_chunk(self, payload: str) -> AsyncIterator[str]:
        try:
            chunk = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed provider chunk: {payload[:80]!r}")
            return

        if isinstance(chunk, dict) and chunk.get("error"):
            raise GatewayError(_error_message(chunk, 502))

        for candidate in iter_response_images(chunk):
            yield await self._to_data_url(candidate)
