"""SenML JSON codec for control-plane payloads.

Every response the agent publishes is a SenML pack holding a single record
with a base name (the request identifier), a name (the command) and a string
value (the command output):

    [{"bn": "<id>", "n": "<name>", "vs": "<value>"}]

Inbound requests use the same shape, which is why decoding lives here too.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Optional


class EncodingError(ValueError):
    """Raised when a SenML pack cannot be encoded or decoded."""


@dataclass(frozen=True, slots=True)
class SenMLRecord:
    base_name: str
    name: str
    string_value: Optional[str] = None


_HTML_ESCAPES = {
    ord("<"): "\\u003c",
    ord(">"): "\\u003e",
    ord("&"): "\\u0026",
    0x2028: "\\u2028",
    0x2029: "\\u2029",
}


def encode_senml(base_name: str, name: str, string_value: str) -> bytes:
    """Encode one string-valued record as a SenML JSON pack.

    ``<``, ``>``, ``&``, U+2028 and U+2029 are written as ``\\u`` escapes,
    the HTML-safe form other SenML encoders emit for the same pack.
    """

    record = {"bn": base_name, "n": name, "vs": string_value}
    try:
        text = json.dumps([record], ensure_ascii=False, separators=(",", ":"))
        return text.translate(_HTML_ESCAPES).encode("utf-8")
    except (TypeError, ValueError, UnicodeEncodeError) as exc:
        raise EncodingError(f"Failed to encode SenML record: {exc}") from exc


def decode_senml(payload: bytes | str) -> List[SenMLRecord]:
    """Decode a SenML JSON pack into records.

    Base names are resolved the SenML way: a record without ``bn`` inherits
    the most recent base name seen in the pack.
    """

    try:
        data: Any = json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Malformed SenML payload: {exc}") from exc

    if not isinstance(data, list):
        raise EncodingError("SenML pack must be a JSON array")

    records: List[SenMLRecord] = []
    base_name = ""
    for entry in data:
        if not isinstance(entry, dict):
            raise EncodingError("SenML record must be a JSON object")
        bn = entry.get("bn", base_name)
        n = entry.get("n", "")
        vs = entry.get("vs")
        if not isinstance(bn, str) or not isinstance(n, str):
            raise EncodingError("SenML 'bn' and 'n' must be strings")
        if vs is not None and not isinstance(vs, str):
            raise EncodingError("SenML 'vs' must be a string")
        base_name = bn
        records.append(SenMLRecord(base_name=bn, name=n, string_value=vs))

    return records
