"""Repair and declutter the free-text fields of search records.

Two independent passes:

* ``repair_encoding`` undoes UTF-8 text that was decoded as Latin-1 somewhere
  upstream (detected by a marker such as ``"Ã©"``), then folds the text with
  NFKC and unescapes HTML entities. Only runs of Latin-1 characters are
  re-decoded, so genuine characters such as ``"–"`` or ``"€"`` survive.
* ``clean_text`` normalises line endings, collapses blank-line runs and
  strips noise tokens (gender markers like ``(H/F)``, stray ``*``, repeated
  punctuation-only separators) from every line.

Both are pure; ``TextNormalizer`` applies them to records according to
:class:`~offerdump.config.NormalizerConfig`.
"""

from __future__ import annotations

import html
import re
import unicodedata
from typing import Collection

import structlog

from ..config import NormalizerConfig
from .parser import Record, field_value

DEFAULT_MARKER = "Ã©"
DEFAULT_NOISE = "*"
DEFAULT_GENDER_MARKERS = frozenset({"hf", "fh", "hfx", "fhx", "mf", "fm"})

_LATIN1_RUN = re.compile(r"[\x00-\xff]+")
# bytes that are not valid UTF-8 come back from surrogateescape as U+DC80..U+DCFF
_ESCAPED_BYTE = re.compile(r"[\udc80-\udcff]")

logger = structlog.get_logger("offerdump.normalizer")


def _redecode_run(match: re.Match[str]) -> str:
    decoded = match.group().encode("latin-1").decode("utf-8", errors="surrogateescape")
    return _ESCAPED_BYTE.sub(lambda byte: chr(ord(byte.group()) - 0xDC00), decoded)


def repair_encoding(text: str, marker: str = DEFAULT_MARKER) -> str:
    if marker and marker in text:
        text = _LATIN1_RUN.sub(_redecode_run, text)
        if marker in text:
            logger.warning("encoding_marker_left", marker=marker)
    text = unicodedata.normalize("NFKC", text)
    return html.unescape(text)


def signature(token: str) -> str:
    """Letters and digits of ``token``, case-folded."""
    return "".join(ch for ch in token if ch.isalnum()).casefold()


def clean_line(
    line: str,
    noise: str = DEFAULT_NOISE,
    gender_markers: Collection[str] = DEFAULT_GENDER_MARKERS,
) -> str:
    kept: list[str] = []
    for token in line.split():
        if noise:
            token = token.strip(noise)
        if not token:
            continue
        token_signature = signature(token)
        if token_signature in gender_markers:
            continue
        if not token_signature and kept and kept[-1] == token:
            continue
        kept.append(token)
    return " ".join(kept)


def clean_text(
    text: str,
    noise: str = DEFAULT_NOISE,
    gender_markers: Collection[str] = DEFAULT_GENDER_MARKERS,
) -> str:
    lines: list[str] = []
    for raw in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        line = clean_line(raw, noise, gender_markers)
        if line:
            lines.append(line)
        elif lines and lines[-1]:
            lines.append("")
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


class TextNormalizer:
    """Apply the text passes to the description (and optionally title) field."""

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self.config = config or NormalizerConfig()
        self._gender_markers = frozenset(self.config.gender_markers)

    def repair_encoding(self, text: str) -> str:
        return repair_encoding(text, self.config.mojibake_marker)

    def clean_text(self, text: str) -> str:
        return clean_text(text, self.config.noise_characters, self._gender_markers)

    def normalize_field(self, text: str) -> str:
        return self.clean_text(self.repair_encoding(text))

    def normalize_record(self, record: Record) -> Record:
        """Rewrite the text fields in place; other fields are left alone."""

        fields = [self.config.description_field]
        if self.config.clean_title:
            fields.append(self.config.title_field)
        for name in fields:
            value = field_value(record, name)
            if isinstance(value, str):
                record[name] = self.normalize_field(value)
        return record


__all__ = [
    "DEFAULT_GENDER_MARKERS",
    "DEFAULT_MARKER",
    "DEFAULT_NOISE",
    "TextNormalizer",
    "clean_line",
    "clean_text",
    "repair_encoding",
    "signature",
]
