"""Fallible parsers that recover schema fields from free-form model text.

Every parser takes the full text plus a schema and returns either `None`
(nothing usable located) or a `ParseAttempt` holding only the fields it
actually found. Defaults and status are decided by the extractor.
"""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass
from typing import Any

from edu_advisor.extraction.schemas import ExtractionSchema, FieldSpec

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_NUMBER_NOISE = re.compile(r"[,_$€£¥\s]")
_BULLET = re.compile(r"^\s*(?:[-*•+]|\d+[.)])\s+(?P<body>.+?)\s*$")
_LABEL_LINE = re.compile(
    r"^\s*(?:[-*•]\s*)?#*\s*(?:\*\*|__)?(?P<label>[A-Za-z][\w /&()'-]{0,60}?)(?:\*\*|__)?"
    r"\s*[:=]\s*(?:\*\*|__)?\s*(?P<value>.*?)\s*$"
)
_ITEM = re.compile(r"<item(?:\s[^>]*)?>(.*?)</item>", re.IGNORECASE | re.DOTALL)
_ATTR = re.compile(r"""(?P<key>[\w-]+)\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')""")
_VALUE_ATTRS = ("value", "amount", "score", "cost")
_RECORD_TOKEN = re.compile(r"[A-Za-z0-9][\w.-]*")
_RANKED_LINE = re.compile(
    r"^\s*(?:\d+[.)]|[-*•]|(?:rank|recommendation|choice|pick|#)\s*\d*\s*[:.)-])\s*(?P<rest>.+)$",
    re.IGNORECASE,
)
_PAREN_ID = re.compile(r"\(\s*(?:id\s*[:=]\s*)?([A-Za-z0-9][\w.-]*)\s*\)", re.IGNORECASE)
_QUESTION = re.compile(r"^\s*(?:\d+[.)]\s*)?(?:q|question)\s*\d*\s*[:.)-]\s*(?P<text>.+)$", re.I)
_ANSWER = re.compile(r"^\s*(?:a|answer)\s*\d*\s*[:.)-]\s*(?P<text>.+)$", re.I)
_LINE_PREFIX = re.compile(r"^\s*(?:\d+[.)]\s*)?(?:(?:q|question|a|answer)\s*:\s*)?", re.I)


@dataclass(slots=True, frozen=True)
class ParseAttempt:
    """Fields located by one parser and the confidence in them."""

    fields: dict[str, Any]
    strategy: str
    confidence: float


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def parse_number(raw: str) -> float | None:
    """Locale-independent number parsing: `$45,000.50/yr` -> 45000.5."""
    match = _NUMBER.search(_NUMBER_NOISE.sub("", raw))
    if match is None:
        return None
    return float(match.group(0))


def normalize_label(label: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9]+", " ", label.lower()).split())


def _clean_text(raw: str) -> str:
    text = re.sub(r"<[^>]+>", " ", raw)
    return " ".join(html.unescape(text).split())


def _split_list(raw: str) -> list[str]:
    items = [_clean_text(item) for item in _ITEM.findall(raw)]
    if not items:
        lines = [line for line in raw.splitlines() if line.strip()]
        bullets = [m.group("body") for m in (_BULLET.match(line) for line in lines) if m]
        if bullets:
            items = [_clean_text(item) for item in bullets]
        elif len(lines) > 1:
            items = [_clean_text(line) for line in lines]
        elif ";" in raw:
            items = [_clean_text(part) for part in raw.split(";")]
        else:
            items = [_clean_text(raw)]
    return [item for item in items if item]


def convert_value(spec: FieldSpec, raw: str) -> Any | None:
    """Convert raw text for `spec`; `None` means the value is unusable."""
    if spec.kind == "number":
        return parse_number(raw)
    if spec.kind == "list":
        items = _split_list(raw)
        return tuple(items) if items else None
    text = _clean_text(raw)
    return text or None


def _attributes(tag_text: str) -> dict[str, str]:
    return {
        m.group("key").lower(): (m.group("dq") if m.group("dq") is not None else m.group("sq"))
        for m in _ATTR.finditer(tag_text)
    }


# ---------------------------------------------------------------------------
# Tag / attribute grammar
# ---------------------------------------------------------------------------


def find_block(text: str, tag: str) -> str | None:
    """Return the body of the first balanced `<tag>...</tag>` block.

    An opening tag with no closing tag (a truncated stream) counts as absent.
    """
    opening = re.search(rf"<{re.escape(tag)}(?:\s[^>]*)?>", text, re.IGNORECASE)
    if opening is None:
        return None
    closing = re.search(rf"</{re.escape(tag)}\s*>", text[opening.end() :], re.IGNORECASE)
    if closing is None:
        return None
    return text[opening.end() : opening.end() + closing.start()]


def _tag_raw(block: str, name: str) -> str | None:
    escaped = re.escape(name)
    paired = re.search(
        rf"<{escaped}(?P<attrs>\s[^>]*)?>(?P<body>.*?)</{escaped}\s*>",
        block,
        re.IGNORECASE | re.DOTALL,
    )
    if paired is not None:
        if paired.group("body").strip():
            return paired.group("body")
        attrs = _attributes(paired.group("attrs") or "")
    else:
        single = re.search(rf"<{escaped}(?P<attrs>\s[^>]*?)/?>", block, re.IGNORECASE)
        if single is None:
            return _named_category(block, name)
        attrs = _attributes(single.group("attrs"))
    for key in _VALUE_ATTRS:
        if key in attrs:
            return attrs[key]
    return None


def _named_category(block: str, name: str) -> str | None:
    """`<category name="tuition" amount="..."/>` or `<category name="tuition">...`."""
    for match in re.finditer(
        r"<category(?P<attrs>\s[^>]*?)(?:/>|>(?P<body>.*?)</category\s*>)",
        block,
        re.IGNORECASE | re.DOTALL,
    ):
        attrs = _attributes(match.group("attrs"))
        if normalize_label(attrs.get("name", "")) != normalize_label(name):
            continue
        if match.group("body") and match.group("body").strip():
            return match.group("body")
        for key in _VALUE_ATTRS:
            if key in attrs:
                return attrs[key]
    return None


def parse_tagged(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Primary parser for tag-style schemas (profile analysis, cost breakdown)."""
    block = find_block(text, schema.block_tag)
    if block is None:
        return None

    found: dict[str, Any] = {}
    for spec in schema.fields:
        scope = block
        if spec.parent is not None:
            scope = find_block(block, spec.parent) or block
        raw = _tag_raw(scope, spec.leaf)
        if raw is None:
            continue
        value = convert_value(spec, raw)
        if value is not None:
            found[spec.name] = value

    if not found:
        return None
    return ParseAttempt(found, "structured", len(found) / len(schema.fields))


# ---------------------------------------------------------------------------
# Line-oriented heuristic grammar
# ---------------------------------------------------------------------------


def _label_index(schema: ExtractionSchema) -> dict[str, FieldSpec]:
    index: dict[str, FieldSpec] = {}
    for spec in schema.fields:
        for label in spec.labels():
            index.setdefault(normalize_label(label), spec)
    return index


def parse_labelled_lines(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Secondary parser: `Label: value` lines, with bullet continuations."""
    index = _label_index(schema)
    lines = text.splitlines()
    found: dict[str, Any] = {}

    i = 0
    while i < len(lines):
        match = _LABEL_LINE.match(lines[i])
        spec = index.get(normalize_label(match.group("label"))) if match else None
        i += 1
        if match is None or spec is None or spec.name in found:
            continue

        raw = match.group("value")
        if not raw and spec.kind != "number":
            continuation: list[str] = []
            while i < len(lines):
                line = lines[i]
                if not line.strip():
                    if continuation:
                        break
                    i += 1
                    continue
                label_match = _LABEL_LINE.match(line)
                if label_match and normalize_label(label_match.group("label")) in index:
                    break
                if spec.kind == "list" and not _BULLET.match(line) and continuation:
                    break
                continuation.append(line)
                i += 1
            raw = "\n".join(continuation)

        value = convert_value(spec, raw) if raw else None
        if value is not None:
            found[spec.name] = value

    if not found:
        return None
    return ParseAttempt(found, "heuristic", len(found) / len(schema.fields))


# ---------------------------------------------------------------------------
# Recommendation grammar (`record_id | rank` pairs)
# ---------------------------------------------------------------------------


def _strip_token(token: str) -> str:
    return token.strip().strip("`'\"*[]<>").strip()


def parse_ranked_block(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Primary parser for recommendation sets: a delimited list block."""
    block = find_block(text, schema.block_tag)
    if block is None:
        return None

    pairs: list[tuple[str, int | None]] = []
    for line in block.splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith("<"):
            attrs = _attributes(line)
            record_id = attrs.get("id") or attrs.get("record_id")
            if record_id:
                rank = parse_number(attrs.get("rank", ""))
                pairs.append((record_id.strip(), int(rank) if rank is not None else None))
            continue
        line = re.sub(r"^(?:\d+[.)]|[-*•])\s+", "", line)
        parts = re.split(r"\s*[|,;:]\s*", line, maxsplit=1)
        record_id = _strip_token(parts[0])
        if not record_id:
            continue
        rank = parse_number(parts[1]) if len(parts) > 1 else None
        pairs.append((record_id, int(rank) if rank is not None else None))

    if not pairs:
        return None
    return ParseAttempt({"recommendations": tuple(pairs)}, "structured", 1.0)


def parse_ranked_lines(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Secondary parser: numbered or labelled lines that name a record."""
    del schema  # identifiers are validated by the extractor
    pairs: list[tuple[str, int | None]] = []
    for line in text.splitlines():
        match = _RANKED_LINE.match(line)
        if match is None:
            continue
        rest = match.group("rest")
        paren = _PAREN_ID.search(rest)
        if paren is not None:
            record_id = paren.group(1)
        else:
            token = _RECORD_TOKEN.search(_strip_token(rest))
            if token is None:
                continue
            record_id = token.group(0).rstrip(".")
        pairs.append((record_id, None))

    if not pairs:
        return None
    return ParseAttempt({"recommendations": tuple(pairs)}, "heuristic", 0.5)


# ---------------------------------------------------------------------------
# Flashcard grammar (JSON array, then Q:/A: lines)
# ---------------------------------------------------------------------------


def _card(item: Any) -> tuple[str, str] | None:
    if not isinstance(item, dict):
        return None
    question = item.get("question") or item.get("front") or item.get("q")
    answer = item.get("answer") or item.get("back") or item.get("a")
    if not isinstance(question, str) or not isinstance(answer, str):
        return None
    question, answer = _clean_text(question), _clean_text(answer)
    if not question or not answer:
        return None
    return question, answer


def parse_json_cards(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Primary parser for flashcards: the outermost JSON array in the text."""
    del schema
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        return None
    try:
        payload = json.loads(text[start : end + 1])
    except ValueError:
        return None
    if not isinstance(payload, list):
        return None

    cards = [card for card in (_card(item) for item in payload) if card is not None]
    if not cards:
        return None
    return ParseAttempt({"cards": tuple(cards)}, "structured", len(cards) / len(payload))


def parse_qa_lines(text: str, schema: ExtractionSchema) -> ParseAttempt | None:
    """Secondary parser: `Q:`/`A:` marked lines, else alternating lines.

    Without markers, consecutive non-empty lines pair up as question then
    answer; a trailing unpaired line is dropped.
    """
    del schema
    cards: list[tuple[str, str]] = []
    pending: str | None = None
    for line in text.splitlines():
        question = _QUESTION.match(line)
        if question is not None:
            pending = _clean_text(question.group("text"))
            continue
        answer = _ANSWER.match(line)
        if answer is not None and pending:
            text_answer = _clean_text(answer.group("text"))
            if text_answer:
                cards.append((pending, text_answer))
            pending = None

    if cards:
        return ParseAttempt({"cards": tuple(cards)}, "heuristic", 0.5)
    cards = _alternating_cards(text)
    if not cards:
        return None
    return ParseAttempt({"cards": tuple(cards)}, "heuristic", 0.3)


def _alternating_cards(text: str) -> list[tuple[str, str]]:
    lines = [line for line in text.splitlines() if line.strip()]
    cards: list[tuple[str, str]] = []
    for index in range(0, len(lines) - 1, 2):
        question = _clean_text(_LINE_PREFIX.sub("", lines[index], count=1))
        answer = _clean_text(_LINE_PREFIX.sub("", lines[index + 1], count=1))
        if question and answer:
            cards.append((question, answer))
    return cards
