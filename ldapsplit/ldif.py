"""LDIF text helpers: record boundaries, attribute lookup and entry rendering.

Only the parts of RFC 2849 the splitter needs are parsed here: ``dn:``
record boundaries, folded lines, and the ``attr: value`` / ``attr:: base64``
value forms. Entries are rendered with ``ldif.LDIFWriter``.
"""
from __future__ import annotations

import base64
import binascii
import io
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from ldif import LDIFWriter

from .errors import DecodeError

_MARKER_RE = re.compile(r"^dn::?", re.IGNORECASE)


@dataclass
class Record:
    index: int
    lines: list[str] = field(default_factory=list)
    # Content found before the first dn: line; it has no boundary of its own.
    implicit: bool = False

    @property
    def dn(self) -> str:
        for line in unfold(self.lines):
            if _MARKER_RE.match(line):
                value = line[3:]
                if value.startswith(":"):
                    try:
                        return _b64_text(value[1:])
                    except DecodeError:
                        return value[1:].strip()
                return value.strip()
        return ""

    @property
    def text(self) -> str:
        return "\n".join(self.lines) + "\n" if self.lines else ""


def is_marker(line: str) -> bool:
    return bool(_MARKER_RE.match(line))


def _is_header(line: str) -> bool:
    s = line.strip()
    return not s or s.startswith("#") or s.lower().startswith("version:")


def unfold(lines: Iterable[str]) -> list[str]:
    """Join LDIF continuation lines (a line starting with one space continues the previous one)."""
    out: list[str] = []
    for line in lines:
        if line.startswith(" ") and out:
            out[-1] += line[1:]
        else:
            out.append(line)
    return out


def split_records(text: str) -> list[Record]:
    """Cut an export document into records at every ``dn:`` line.

    Comment lines (and their continuation lines) belong to no record;
    ldapsearch prints one before every entry. Lines before the first marker
    are dropped when they are only blank lines or a ``version:`` header;
    anything else there becomes an implicit record so that it is reported
    instead of lost.
    """
    preamble: list[str] = []
    records: list[Record] = []
    current: Record | None = None
    in_comment = False
    for line in (text or "").splitlines():
        if in_comment and line.startswith(" "):
            continue
        in_comment = line.startswith("#")
        if in_comment:
            continue
        if is_marker(line):
            current = Record(index=0, lines=[line])
            records.append(current)
        elif current is not None:
            current.lines.append(line)
        else:
            preamble.append(line)

    if not all(_is_header(line) for line in preamble):
        records.insert(0, Record(index=0, lines=preamble, implicit=True))

    for i, rec in enumerate(records, 1):
        rec.index = i
    return records


def _b64_text(value: str) -> str:
    try:
        raw = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"invalid base64 value {value.strip()!r}: {e}") from e
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"base64 value {value.strip()!r} is not UTF-8 text") from e


def escape_shell_dollar(value: str) -> str:
    return value.replace("$", "\\$")


def account_name(record: Record, attribute: str) -> str | None:
    """Return the account name of a record, or None when the attribute is absent.

    A plain ``attr: value`` line wins over an encoded ``attr:: base64`` line.
    Decoded names get ``$`` escaped as ``\\$``. Raises DecodeError when only
    an encoded value exists and it cannot be decoded.
    """
    wanted = (attribute or "").strip().lower()
    encoded: str | None = None
    for line in unfold(record.lines):
        if line.startswith("#"):
            continue
        name, sep, rest = line.partition(":")
        if not sep or name.strip().lower() != wanted:
            continue
        if rest.startswith(":"):
            if encoded is None:
                encoded = rest[1:]
        elif rest.startswith("<"):
            # URL-referenced values are not fetched
            continue
        else:
            return rest.strip()

    if encoded is None:
        return None
    try:
        return escape_shell_dollar(_b64_text(encoded))
    except DecodeError as e:
        raise DecodeError(str(e), index=record.index, dn=record.dn) from e


def strip_blank_lines(path: str) -> int:
    """Remove blank lines from a file in place. Returns the number of lines removed."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        lines = f.read().splitlines(keepends=True)
    kept = [line for line in lines if line.strip()]
    removed = len(lines) - len(kept)
    if removed:
        tmp = f"{path}.tmp"
        with open(tmp, "w", encoding="utf-8", newline="") as f:
            f.writelines(kept)
        os.replace(tmp, path)
    return removed


# LDIFWriter folds lines longer than ``cols``
_NO_WRAP = sys.maxsize


def _writer_value(value: bytes | str) -> bytes | str:
    # LDIFWriter base64-encodes every bytes value; text goes through its safe-string check
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value
    return value


def format_entry(dn: str, attributes: Mapping[str, Iterable[bytes | str]]) -> str:
    """Render one entry as unwrapped LDIF, encoding unsafe values as base64."""
    record: dict[str, list[bytes | str]] = {}
    for name, values in attributes.items():
        if isinstance(values, (bytes, str)):
            values = [values]
        record[name] = [_writer_value(v) for v in values]
    buf = io.BytesIO()
    LDIFWriter(buf, cols=_NO_WRAP).unparse(dn, record)
    return buf.getvalue().decode("utf-8")
