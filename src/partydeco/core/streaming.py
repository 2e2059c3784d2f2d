"""Server-Sent-Events parsing and out-of-order image reassembly.

Image generation fans out into one provider call per decoration type and the
results travel back over a single SSE connection.  Events arrive in whatever
order the provider finishes, and network chunks split events at arbitrary
byte boundaries, so both ends of the stream share the helpers in this module.

Wire Format
-----------
Each event is one ``data:`` line followed by a blank line::

    data: {"image": "data:image/png;base64,...", "decorationType": "Cake topper", "index": 2, "prompt": "..."}

    data: {"error": "No image received", "decorationType": "Favor tags", "index": 0}

    data: [DONE]

An ``error`` event without an ``index`` reports a failure of the whole
stream rather than of one image.

Reconciliation Rules
--------------------
- Slots are keyed by ``index``; arrival order is irrelevant.
- An image fills its slot and clears any error recorded for that index.
- An error is recorded only while the slot is still empty.
- ``[DONE]`` completes the stream; anything after it is ignored.
- The batch fails only when no image at all was received.  Otherwise the
  successful subset is returned together with the per-index errors.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class GenerationFailedError(Exception):
    """Raised when a completed stream produced no images at all.

    Attributes:
        errors: Collected failure messages, stream-level failure first.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        message = errors[0] if errors else "No images were generated"
        super().__init__(message)


def encode_sse_event(payload: dict) -> str:
    """Serialise *payload* as a single SSE ``data:`` event."""
    return f"data: {json.dumps(payload)}\n\n"


def encode_sse_done() -> str:
    """Return the completion event that terminates every image stream."""
    return f"data: {DONE_SENTINEL}\n\n"


class SSELineBuffer:
    """Accumulate SSE text and emit the payloads of complete ``data:`` lines.

    Chunks may end in the middle of a line.  The unterminated tail is kept
    until the next :meth:`feed` call completes it.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> list[str]:
        """Add *text* and return every completed ``data:`` payload.

        Args:
            text: Next decoded chunk of the response body

        Returns:
            Payload strings in arrival order (may be empty)
        """
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        payloads: list[str] = []
        for line in lines:
            payload = self._parse_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Return the payload of a trailing line that never got its newline."""
        tail, self._buffer = self._buffer, ""
        payload = self._parse_line(tail)
        return [payload] if payload is not None else []

    @staticmethod
    def _parse_line(line: str) -> str | None:
        line = line.rstrip("\r")
        # Blank separators, ": keep-alive" comments, and event:/id:/retry: fields.
        if not line.startswith("data:"):
            return None
        payload = line[len("data:") :]
        if payload.startswith(" "):
            payload = payload[1:]
        return payload


@dataclass
class ImageSlot:
    """One successfully generated image, keyed by its request index."""

    index: int
    image: str
    decoration_type: str | None = None
    prompt: str | None = None


@dataclass
class SlotError:
    """A per-index generation failure."""

    index: int
    error: str
    decoration_type: str | None = None


@dataclass
class ReassembledBatch:
    """The client-visible state of a finished (or abandoned) image stream.

    Attributes:
        images: Data URLs ordered by request index.
        decoration_types: Decoration type for each entry of ``images``.
        prompts: Prompt for each entry of ``images``.
        indexes: Request index for each entry of ``images``.
        errors: Failures for indexes that never produced an image.
        complete: Whether the ``[DONE]`` signal was received.
    """

    images: list[str] = field(default_factory=list)
    decoration_types: list[str | None] = field(default_factory=list)
    prompts: list[str | None] = field(default_factory=list)
    indexes: list[int] = field(default_factory=list)
    errors: list[SlotError] = field(default_factory=list)
    complete: bool = False

    def to_dict(self) -> dict:
        """Return a JSON-serialisable view of the batch, including per-index errors."""
        return {
            "images": self.images,
            "decorationTypes": self.decoration_types,
            "prompts": self.prompts,
            "errors": [
                {"index": e.index, "decorationType": e.decoration_type, "error": e.error}
                for e in self.errors
            ],
        }


class ImageStreamReassembler:
    """Rebuild an ordered image batch from an SSE stream of indexed events.

    Usage::

        reassembler = ImageStreamReassembler()
        for chunk in response.iter_text():
            reassembler.feed(chunk)
        batch = reassembler.result()
    """

    def __init__(self) -> None:
        self._lines = SSELineBuffer()
        self._slots: dict[int, ImageSlot] = {}
        self._errors: dict[int, SlotError] = {}
        self._stream_errors: list[str] = []
        self.done = False
        self.malformed_events = 0

    def feed(self, text: str) -> None:
        """Consume the next chunk of SSE text."""
        if self.done:
            return
        for payload in self._lines.feed(text):
            self._handle_payload(payload)
            if self.done:
                break

    def close(self) -> None:
        """Process any unterminated final line once the transport has ended."""
        if self.done:
            return
        for payload in self._lines.flush():
            self._handle_payload(payload)

    def apply(self, event: dict) -> None:
        """Merge one decoded event into the index-keyed slots.

        Events that are neither images nor errors are ignored.
        """
        index = event.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            index = None

        image = event.get("image")
        if isinstance(image, str) and image and index is not None:
            self._slots[index] = ImageSlot(
                index=index,
                image=image,
                decoration_type=event.get("decorationType"),
                prompt=event.get("prompt"),
            )
            self._errors.pop(index, None)
            return

        error = event.get("error")
        if error is None:
            return
        message = str(error) or "Failed to generate image"

        if index is None:
            logger.warning(f"Stream-level generation error: {message}")
            self._stream_errors.append(message)
        elif index not in self._slots:
            self._errors[index] = SlotError(
                index=index,
                error=message,
                decoration_type=event.get("decorationType"),
            )

    def snapshot(self) -> ReassembledBatch:
        """Return the current state without enforcing the zero-image rule."""
        batch = ReassembledBatch(complete=self.done)
        for index in sorted(self._slots):
            slot = self._slots[index]
            batch.images.append(slot.image)
            batch.decoration_types.append(slot.decoration_type)
            batch.prompts.append(slot.prompt)
            batch.indexes.append(index)
        batch.errors = [self._errors[index] for index in sorted(self._errors)]
        return batch

    def result(self) -> ReassembledBatch:
        """Return the reconciled batch.

        Raises:
            GenerationFailedError: If no image succeeded.
        """
        batch = self.snapshot()
        if not batch.images:
            messages = self._stream_errors + [e.error for e in batch.errors]
            raise GenerationFailedError(messages)
        return batch

    def consume(self, chunks: Iterable[str]) -> ReassembledBatch:
        """Feed every chunk, close the buffer, and return :meth:`result`."""
        for chunk in chunks:
            self.feed(chunk)
            if self.done:
                break
        self.close()
        return self.result()

    def _handle_payload(self, payload: str) -> None:
        if payload.strip() == DONE_SENTINEL:
            self.done = True
            return
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            self.malformed_events += 1
            logger.debug(f"Skipping malformed SSE payload: {payload[:80]!r}")
            return
        if isinstance(event, dict):
            self.apply(event)
