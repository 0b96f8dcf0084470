"""Incremental decoder for line-framed server-push model streams."""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any

from edu_advisor.config import StreamConfig
from edu_advisor.errors import FramingError
from edu_advisor.types import StreamFragment

logger = logging.getLogger(__name__)


class ChunkDecoder:
    """Turns raw transport bytes into ordered `StreamFragment`s.

    Framing:
    - Payload lines carry the `data:` marker; everything else (blank
      separators, `:` keep-alive comments, `event:`/`id:` fields) is dropped.
    - The sentinel payload (`[DONE]`) ends the stream with an empty final
      fragment.
    - Payloads are OpenAI-compatible chunk objects; the text delta is read
      from `choices[0].delta.content`.

    Bytes may split anywhere, including inside a multi-byte character, so the
    decoder keeps both an incremental UTF-8 state and a partial-line residue.
    A payload that cannot be interpreted is logged and skipped.
    """

    def __init__(self, config: StreamConfig | None = None) -> None:
        self.config = config or StreamConfig()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._residue = ""
        self._next_sequence = 0
        self._finished = False
        self.skipped_lines = 0

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, data: bytes) -> list[StreamFragment]:
        """Decode one transport buffer; returns zero or more fragments."""
        if self._finished or not data:
            return []

        text = self._residue + self._utf8.decode(data)
        lines = text.split("\n")
        self._residue = lines.pop()
        if len(self._residue) > self.config.max_line_bytes:
            self._skip(FramingError(f"line exceeds {self.config.max_line_bytes} bytes"))
            self._residue = ""

        fragments: list[StreamFragment] = []
        for line in lines:
            fragment = self._handle_line(line)
            if fragment is None:
                continue
            fragments.append(fragment)
            if fragment.is_final:
                break
        return fragments

    def close(self) -> list[StreamFragment]:
        """Flush at transport EOF; always ends with the final fragment."""
        if self._finished:
            return []

        fragments: list[StreamFragment] = []
        tail = self._residue + self._utf8.decode(b"", final=True)
        self._residue = ""
        if tail:
            fragment = self._handle_line(tail)
            if fragment is not None:
                fragments.append(fragment)
        if not self._finished:
            fragments.append(self._final())
        return fragments

    def _handle_line(self, line: str) -> StreamFragment | None:
        line = line.rstrip("\r")
        if not line.startswith(self.config.data_prefix):
            return None

        payload = line[len(self.config.data_prefix) :].strip()
        if payload == self.config.done_sentinel:
            return self._final()
        if not payload:
            return None

        try:
            text = _payload_text(json.loads(payload))
        except (ValueError, FramingError) as exc:
            self._skip(exc if isinstance(exc, FramingError) else FramingError(str(exc)))
            return None

        if not text:
            return None
        fragment = StreamFragment(sequence=self._next_sequence, text=text)
        self._next_sequence += 1
        return fragment

    def _final(self) -> StreamFragment:
        fragment = StreamFragment(sequence=self._next_sequence, text="", is_final=True)
        self._next_sequence += 1
        self._finished = True
        return fragment

    def _skip(self, error: FramingError) -> None:
        self.skipped_lines += 1
        logger.warning("Skipping stream line (%s): %s", error.error_code, error.message)


def _payload_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        raise FramingError(f"unexpected payload type: {type(payload).__name__}")
    if "error" in payload:
        raise FramingError(f"backend reported error: {payload['error']}")

    choices = payload.get("choices")
    if isinstance(choices, list):
        if not choices:
            return ""
        choice = choices[0]
        if not isinstance(choice, dict):
            raise FramingError("choice entry is not an object")
        for key in ("delta", "message"):
            part = choice.get(key)
            if isinstance(part, dict):
                content = part.get("content")
                return content if isinstance(content, str) else ""
        return ""

    for key in ("text", "content"):
        value = payload.get(key)
        if isinstance(value, str):
            return value
    raise FramingError("payload carries no text field")
