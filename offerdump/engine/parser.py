"""Decoding of search result pages.

Records keep every member as the exact JSON text the server sent
(:class:`RawValue`); only the fields the pipeline rewrites are decoded, so
everything else is written out byte for byte.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from json.decoder import scanstring
from typing import Any

from .errors import IntegrityError

RESULTS_KEY = "resultats"

Record = dict[str, Any]

_DECODER = json.JSONDecoder()
_WHITESPACE = re.compile(r"[ \t\n\r]*")
# a string literal, or whitespace between tokens
_STRING_OR_SPACE = re.compile(r'("(?:\\.|[^"\\])*")|[ \t\n\r]+')


@dataclass(frozen=True, slots=True)
class RawValue:
    """A JSON value kept verbatim as received."""

    text: str

    def decode(self) -> Any:
        return json.loads(self.text)


def parse_results(body: bytes, max_items: int) -> list[Record]:
    """Decode a ``{"resultats": [...]}`` envelope into its records.

    A page that fails to decode, or whose result count falls outside
    ``(0, max_items]``, means the server and the pipeline disagree about
    what was asked for; that is never recoverable.
    """

    try:
        text = body.decode("utf-8")
        envelope = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise IntegrityError(f"Undecodable results page: {exc}") from exc
    if not isinstance(envelope, dict):
        raise IntegrityError("Results page is not a JSON object")
    results = envelope.get(RESULTS_KEY)
    if not isinstance(results, list):
        raise IntegrityError(f"Results page has no '{RESULTS_KEY}' list")
    if not 0 < len(results) <= max_items:
        raise IntegrityError(
            f"Results page holds {len(results)} records, expected 1 to {max_items}"
        )
    for entry in results:
        if not isinstance(entry, dict):
            raise IntegrityError("Result entry is not a JSON object")

    # the page is known to be valid JSON past this point
    members, _ = _split_object(text, _skip(text, 0))
    return _split_array(members[RESULTS_KEY].text)


def field_value(record: Record, field: str) -> Any:
    """Return the decoded value of ``field``, whether raw or already rewritten."""

    value = record.get(field)
    if isinstance(value, RawValue):
        return value.decode()
    return value


def record_id(record: Record, field: str = "id") -> str:
    value = field_value(record, field)
    if value is None or isinstance(value, (dict, list)):
        raise IntegrityError(f"Record without usable '{field}' field")
    return str(value)


def _compact(raw: str) -> str:
    """Drop whitespace between tokens; literals are left untouched."""
    if raw[0] not in "{[":
        return raw
    return _STRING_OR_SPACE.sub(lambda match: match.group(1) or "", raw)


def _skip(text: str, pos: int) -> int:
    return _WHITESPACE.match(text, pos).end()


def _split_object(text: str, pos: int) -> tuple[Record, int]:
    """Cut the object starting at ``pos`` into raw member values."""

    members: Record = {}
    pos = _skip(text, pos + 1)
    if text[pos] == "}":
        return members, pos + 1
    while True:
        name, pos = scanstring(text, pos + 1)
        pos = _skip(text, _skip(text, pos) + 1)
        _, end = _DECODER.raw_decode(text, pos)
        members[name] = RawValue(_compact(text[pos:end]))
        pos = _skip(text, end)
        if text[pos] == "}":
            return members, pos + 1
        pos = _skip(text, pos + 1)


def _split_array(text: str) -> list[Record]:
    records: list[Record] = []
    pos = _skip(text, 1)
    while text[pos] != "]":
        record, pos = _split_object(text, pos)
        records.append(record)
        pos = _skip(text, pos)
        if text[pos] == ",":
            pos = _skip(text, pos + 1)
    return records


__all__ = ["RESULTS_KEY", "RawValue", "Record", "field_value", "parse_results", "record_id"]
