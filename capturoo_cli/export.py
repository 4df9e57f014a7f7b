"""Lead export pipeline.

The ``/leads`` response is a single JSON object, ``{"object": "list", "data": [...]}``.
``iter_json_array`` walks that wrapper incrementally so leads can be decoded and
written one at a time instead of loading the whole collection.
"""

from __future__ import annotations

import csv
import json
import re
from decimal import Decimal
from typing import Any, Iterable, Iterator, List, Optional, TextIO

import yaml

from .errors import ExportError
from .models import Lead

EXPORT_FORMATS = ("json", "yaml", "csv")

_WHITESPACE = re.compile(r"\s*")
_NUMBER_TAIL = re.compile(r"[0-9.eE+-]*\Z")
_decoder = json.JSONDecoder()


class _ChunkReader:
    def __init__(self, chunks: Iterable[str]):
        self._chunks = iter(chunks)
        self.buf = ""
        self.pos = 0
        self.eof = False

    def _fill(self) -> bool:
        for chunk in self._chunks:
            if chunk:
                self.buf = self.buf[self.pos :] + chunk
                self.pos = 0
                return True
        self.eof = True
        return False

    def peek(self) -> str:
        while True:
            self.pos = _WHITESPACE.match(self.buf, self.pos).end()
            if self.pos < len(self.buf):
                return self.buf[self.pos]
            if not self._fill():
                return ""

    def expect(self, char: str) -> None:
        found = self.peek()
        if found != char:
            raise ExportError(f"malformed lead stream: expected {char!r}, found {found or 'end of input'!r}")
        self.pos += 1

    def value(self) -> Any:
        if not self.peek():
            raise ExportError("malformed lead stream: unexpected end of input")
        while True:
            try:
                obj, end = _decoder.raw_decode(self.buf, self.pos)
            except json.JSONDecodeError as exc:
                if self._fill():
                    continue
                raise ExportError(f"malformed lead stream: {exc}") from exc
            # a number cut at the buffer edge may continue in the next chunk
            if (
                not self.eof
                and isinstance(obj, (int, float))
                and not isinstance(obj, bool)
                and _NUMBER_TAIL.match(self.buf, end)
                and self._fill()
            ):
                continue
            self.pos = end
            return obj


def iter_json_array(chunks: Iterable[str], key: str = "data") -> Iterator[Any]:
    """Yield the elements of the array stored under ``key`` of a streamed JSON object."""
    reader = _ChunkReader(chunks)
    found = False
    reader.expect("{")
    if reader.peek() == "}":
        reader.pos += 1
    else:
        while True:
            name = reader.value()
            if not isinstance(name, str):
                raise ExportError(f"malformed lead stream: object key {name!r} is not a string")
            reader.expect(":")
            if name == key:
                found = True
                reader.expect("[")
                if reader.peek() == "]":
                    reader.pos += 1
                else:
                    while True:
                        yield reader.value()
                        sep = reader.peek()
                        reader.pos += 1
                        if sep == "]":
                            break
                        if sep != ",":
                            raise ExportError(f"malformed lead stream: unexpected {sep or 'end of input'!r} in array")
            else:
                reader.value()
            sep = reader.peek()
            reader.pos += 1
            if sep == "}":
                break
            if sep != ",":
                raise ExportError(f"malformed lead stream: unexpected {sep or 'end of input'!r} in object")
    if not found:
        raise ExportError(f"malformed lead stream: no {key!r} array in response")


def format_scalar(key: str, value: Any) -> str:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        # shortest round-trip digits, never in exponent form
        return format(Decimal(repr(value)), "f")
    raise ExportError(f"unsupported type detected (key={key} value={value!r})")


class LeadCsvWriter:
    """Header-less CSV writer.

    Data columns are added in the order keys are first seen. A new key only
    widens the rows written after it appears; earlier rows are never rewritten.
    """

    def __init__(self, out: TextIO):
        self.writer = csv.writer(out, lineterminator="\n")
        self.fields: List[str] = []

    def flatten(self, lead: Lead) -> List[str]:
        for key in lead.data:
            if key not in self.fields:
                self.fields.append(key)
        record = [lead.lead_id]
        for name in self.fields:
            if name in lead.data:
                record.append(format_scalar(name, lead.data[name]))
            else:
                record.append("")
        system = lead.system
        record.extend([system.client_version, system.host, system.referrer, system.user_agent, system.created])
        return record

    def write(self, lead: Lead) -> None:
        self.writer.writerow(self.flatten(lead))


def write_leads(fmt: str, leads: Iterable[Lead], out: TextIO) -> int:
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"format not supported (format={fmt})")
    csv_writer: Optional[LeadCsvWriter] = LeadCsvWriter(out) if fmt == "csv" else None
    count = 0
    for lead in leads:
        if csv_writer is not None:
            csv_writer.write(lead)
        elif fmt == "json":
            out.write(json.dumps(lead.to_dict()) + "\n")
        else:
            out.write(yaml.safe_dump(lead.to_dict(), sort_keys=False, explicit_start=True))
        count += 1
    out.flush()
    return count


def export_leads(client: Any, fmt: str, bucket_id: str, out: TextIO) -> int:
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"format not supported (format={fmt})")
    return write_leads(fmt, client.stream_leads(bucket_id), out)
