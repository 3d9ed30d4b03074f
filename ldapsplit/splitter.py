from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable

from .env_settings import DEFAULT_ACCOUNT_ATTRIBUTE
from .errors import InvalidNameError, OutputExistsError, RecordError
from .ldif import Record, account_name, split_records, strip_blank_lines

logger = logging.getLogger(__name__)

CHUNK_PREFIX = "ldapsplit-"
CHUNK_SUFFIX = ".part"
OUTPUT_SUFFIX = ".ldif"


@dataclass
class SplitResult:
    written: list[str] = field(default_factory=list)
    # chunk files left under their temporary name because no account name was found
    unmatched: list[str] = field(default_factory=list)
    errors: list[RecordError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unmatched and not self.errors

    @property
    def total(self) -> int:
        return len(self.written) + len(self.unmatched) + len(self.errors)


def chunk_path(output_dir: str, index: int, width: int = 5) -> str:
    return os.path.join(output_dir, f"{CHUNK_PREFIX}{index:0{width}d}{CHUNK_SUFFIX}")


def write_chunks(records: list[Record], output_dir: str) -> list[tuple[Record, str]]:
    """Write every record to an order-preserving temporary file."""
    width = max(5, len(str(len(records))))
    out: list[tuple[Record, str]] = []
    for rec in records:
        path = chunk_path(output_dir, rec.index, width)
        with open(path, "w", encoding="utf-8") as f:
            f.write(rec.text)
        out.append((rec, path))
    return out


def _check_stem(stem: str, rec: Record) -> str:
    s = stem.strip()
    if not s or s in (".", "..") or "/" in s or os.sep in s or "\x00" in s:
        raise InvalidNameError(f"account name {stem!r} is not usable as a file name", index=rec.index, dn=rec.dn)
    return s


def split_export(
    text: str,
    output_dir: str,
    account_attribute: str = DEFAULT_ACCOUNT_ATTRIBUTE,
    overwrite: bool = False,
    protected: Iterable[str] = (),
) -> SplitResult:
    """Split an export into ``<output_dir>/<account-name>.ldif`` files.

    Each record is first written to ``ldapsplit-NNNNN.part`` and then renamed
    after its account name (a plain value wins over a base64 one) with blank
    lines removed. Records that cannot be named keep their temporary file and
    are reported in the result; filesystem errors propagate. Paths in
    ``protected`` (the export being split) are never used as targets.
    """
    os.makedirs(output_dir, exist_ok=True)
    records = split_records(text)
    result = SplitResult()
    if not records:
        logger.info("Export contains no records")
        return result

    chunks = write_chunks(records, output_dir)
    logger.debug("Wrote %d chunk file(s) to %s", len(chunks), output_dir)

    claimed: set[str] = set()
    keep = {os.path.abspath(p) for p in protected if p}
    for rec, chunk in chunks:
        try:
            name = account_name(rec, account_attribute)
            if name is None:
                what = "content before the first dn: line" if rec.implicit else (rec.dn or "record")
                logger.warning(
                    "Record #%d (%s) has no %s attribute; left as %s",
                    rec.index, what, account_attribute, chunk,
                )
                result.unmatched.append(chunk)
                continue

            stem = _check_stem(name, rec)
            target = os.path.join(output_dir, f"{stem}{OUTPUT_SUFFIX}")
            if os.path.abspath(target) in keep:
                raise OutputExistsError(f"{target} is the export being split", index=rec.index, dn=rec.dn)
            if stem in claimed:
                raise OutputExistsError(f"duplicate account name {stem!r} in export", index=rec.index, dn=rec.dn)
            if os.path.exists(target) and not overwrite:
                raise OutputExistsError(f"{target} already exists (use --force to overwrite)", index=rec.index, dn=rec.dn)

            os.replace(chunk, target)
            strip_blank_lines(target)
            claimed.add(stem)
            result.written.append(target)
            logger.debug("Record #%d -> %s", rec.index, target)
        except RecordError as e:
            logger.error("%s; left as %s", e, chunk)
            result.errors.append(e)

    logger.info(
        "Split %d record(s): %d written, %d unmatched, %d failed",
        result.total, len(result.written), len(result.unmatched), len(result.errors),
    )
    return result
