"""
Snapshot envelope codec.

A snapshot entry is a plain-text envelope: a metadata block between two
'---' fences, one blank line, then the captured body verbatim:

    ---
    {
      "originalPath": "Manuscript/Chapter 1.md",
      "timestamp": 1704877200000,
      "note": "Before the rewrite",
      "snapshotWordCount": 2311,
      "isPinned": false
    }
    ---

    It was a dark and stormy night...

The host's metadata index skips the hidden snapshot root, so metadata is
always recovered by parsing the envelope here. Users can and do hand-edit
these files, so decoding is layered:

    1. strict: the block as JSON, then as YAML front matter
    2. extract: per-field regular expressions over the raw block text
    3. unify: strict values win, extracted values fill gaps, then defaults

Invariants:
    - decode() never raises on malformed metadata
    - An entry without a recoverable timestamp yields metadata=None
    - decode(encode(m, b)) returns b and m unchanged, provided b does not
      itself start with the delimiter line

How to change safely:
    - Never rename envelope keys (see models.py), old entries must decode
    - New keys must have a default so older entries keep decoding
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import frontmatter
import yaml

from ..errors import DecodeWarning
from .models import (
    KEY_IS_PINNED,
    KEY_NOTE,
    KEY_ORIGINAL_PATH,
    KEY_TIMESTAMP,
    KEY_WORD_COUNT,
    SnapshotMetadata,
)

logger = logging.getLogger(__name__)

DELIMITER = "---"

_FENCED_BLOCK = re.compile(
    r"\A---[ \t]*\r?\n(?:(?P<block>.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)
_WORD = re.compile(r"\S+")


def _key_pattern(key: str, value: str) -> re.Pattern[str]:
    return re.compile(r"""(?<![\w])["']?%s["']?\s*:\s*%s""" % (re.escape(key), value))


_INT_VALUE = r"""["']?(-?\d+)["']?(?=[ \t]*(?:[,}\r\n]|\Z))"""
_QUOTED_VALUE = r'''"((?:[^"\\\r\n]|\\.)*)"'''
_BOOL_VALUE = r"""["']?(true|false)\b"""

_EXTRACTORS = {
    KEY_TIMESTAMP: _key_pattern(KEY_TIMESTAMP, _INT_VALUE),
    KEY_WORD_COUNT: _key_pattern(KEY_WORD_COUNT, _INT_VALUE),
    KEY_NOTE: _key_pattern(KEY_NOTE, _QUOTED_VALUE),
    KEY_ORIGINAL_PATH: _key_pattern(KEY_ORIGINAL_PATH, _QUOTED_VALUE),
    KEY_IS_PINNED: re.compile(
        r"""(?<![\w])["']?%s["']?\s*:\s*%s""" % (KEY_IS_PINNED, _BOOL_VALUE),
        re.IGNORECASE,
    ),
}


@dataclass
class DecodedEnvelope:
    """Result of a tolerant decode.

    Attributes:
        metadata: Unified metadata, None when no timestamp was recoverable
        body: Captured document body with the envelope stripped
        structured: Whether the strict (JSON/YAML) parse succeeded
        degraded_fields: Envelope keys that did not come from the strict parse
    """

    metadata: Optional[SnapshotMetadata]
    body: str
    structured: bool = False
    degraded_fields: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.metadata is not None and not self.degraded_fields


def encode(metadata: SnapshotMetadata, body: str) -> str:
    """Serialize metadata and body into one envelope.

    json.dumps escapes double quotes (and control characters) in string
    values, so notes and paths survive the round trip unchanged.
    """
    block = json.dumps(metadata.to_dict(), indent=2, ensure_ascii=False)
    return f"{DELIMITER}\n{block}\n{DELIMITER}\n\n{body}"


def split_envelope(text: str) -> Tuple[Optional[str], str]:
    """Split raw text into (metadata block, body).

    Accepts one or two newlines after the closing fence. Text without a
    leading fenced block is returned whole as the body with block None.
    """
    match = _FENCED_BLOCK.match(text)
    if not match:
        return None, text

    body = text[match.end():]
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return match.group("block") or "", body


def decode(text: str, fallback_path: str = "") -> DecodedEnvelope:
    """Decode an envelope without ever failing on malformed metadata.

    Args:
        text: Raw entry content
        fallback_path: original_path to use when none is recoverable

    Returns:
        DecodedEnvelope; metadata is None if no timestamp was found
    """
    block, body = split_envelope(text)
    raw = block if block is not None else text

    structured = _parse_structured(block) if block is not None else None
    extracted = _extract_fields(raw)

    degraded: List[str] = []

    def pick(key: str, coerce: Any) -> Any:
        if structured is not None and key in structured:
            value = coerce(structured[key])
            if value is not None:
                return value
        degraded.append(key)
        if key in extracted:
            return coerce(extracted[key])
        return None

    timestamp = pick(KEY_TIMESTAMP, _coerce_int)
    note = pick(KEY_NOTE, _coerce_str)
    word_count = pick(KEY_WORD_COUNT, _coerce_int)
    original_path = pick(KEY_ORIGINAL_PATH, _coerce_str)
    is_pinned = pick(KEY_IS_PINNED, _coerce_bool)

    if timestamp is None:
        return DecodedEnvelope(
            metadata=None,
            body=body,
            structured=structured is not None,
            degraded_fields=degraded,
        )

    metadata = SnapshotMetadata(
        original_path=original_path if original_path is not None else fallback_path,
        timestamp=timestamp,
        note=note if note is not None else "",
        word_count=word_count if word_count is not None and word_count >= 0 else 0,
        is_pinned=bool(is_pinned),
    )
    return DecodedEnvelope(
        metadata=metadata,
        body=body,
        structured=structured is not None,
        degraded_fields=degraded,
    )


def decode_metadata(
    text: str,
    fallback_path: str = "",
    source: Optional[str] = None,
) -> SnapshotMetadata:
    """Decode only the metadata of an envelope.

    Raises:
        DecodeWarning: If no timestamp can be recovered
    """
    decoded = decode(text, fallback_path)
    if decoded.metadata is None:
        raise DecodeWarning(
            f"No recoverable timestamp in snapshot {source or '<text>'}",
            snapshot_path=source,
        )
    return decoded.metadata


def decode_body(text: str) -> str:
    """Captured body of an envelope (metadata block stripped)."""
    return split_envelope(text)[1]


def strip_front_matter(text: str) -> str:
    """Remove a leading front-matter block from a source document.

    Unparseable front matter is left in place and counted as text.
    """
    if not text:
        return ""
    try:
        return frontmatter.loads(text).content
    except (yaml.YAMLError, ValueError) as e:
        logger.debug(f"Counting front matter as text: {e}")
        return text


def count_words(text: str) -> int:
    """Whitespace-delimited token count."""
    return len(_WORD.findall(text))


# Layer 1: strict parse

def _parse_structured(block: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(block)
    except ValueError:
        try:
            data = yaml.safe_load(block)
        except yaml.YAMLError:
            return None
    return data if isinstance(data, dict) else None


# Layer 2: field extraction

def _extract_fields(raw: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, pattern in _EXTRACTORS.items():
        match = pattern.search(raw)
        if not match:
            continue
        value = match.group(1)
        if key in (KEY_NOTE, KEY_ORIGINAL_PATH):
            value = _unescape(value)
        fields[key] = value
    return fields


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except ValueError:
        return value.replace('\\"', '"')


# Coercion shared by both layers

def _coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        value = value.strip()
        if re.fullmatch(r"-?\d+", value):
            return int(value)
    return None


def _coerce_str(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
    return None
