from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from .directory import DirectoryClient, DirectoryConfig
from .env_settings import DEFAULT_EXPORT_FILE
from .errors import AcquisitionError, EmptyExportError
from .ldif import is_marker

logger = logging.getLogger(__name__)

# Pagination/result metadata printed by ldapsearch (and mirrored by the ldap3 client).
CONTROL_PREFIXES = (
    "# pagedresults:",
    "# search result",
    "# numResponses:",
    "# numEntries:",
    "# numReferences:",
    "search:",
    "result:",
    "control:",
)
REFERRAL_PREFIXES = (
    "ref:",
    "# refldap",
    "# search reference",
)


@dataclass
class Export:
    text: str
    path: str = ""
    live: bool = False


def clean_export(text: str) -> str:
    """Drop control and referral lines, collapse blank-line runs into one blank line."""
    out: list[str] = []
    prev_blank = True  # also strips leading blank lines
    for line in (text or "").splitlines():
        if line.startswith(CONTROL_PREFIXES) or line.startswith(REFERRAL_PREFIXES):
            continue
        blank = not line.strip()
        if blank and prev_blank:
            continue
        out.append("" if blank else line)
        prev_blank = blank
    if not out:
        return ""
    return "\n".join(out) + "\n"


def read_export(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError as e:
        raise EmptyExportError(f"export file {path} does not exist") from e
    except (OSError, UnicodeDecodeError) as e:
        raise AcquisitionError(f"cannot read export file {path}: {e}") from e


def write_export(path: str, text: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def acquire_export(
    cfg: Optional[DirectoryConfig],
    client: Optional[DirectoryClient],
    source: str = "",
    export_file: str = DEFAULT_EXPORT_FILE,
) -> Export:
    """Return the export document, either from ``source`` or from a live paged search.

    A live export is cleaned and written to ``export_file`` before it is
    returned, so it can be split again later with ``--file`` without another
    query. An empty document is an error in both modes.
    """
    if source:
        logger.info("Reading export from %s", source)
        text = read_export(source)
        if not text.strip():
            raise EmptyExportError(f"export file {source} is empty")
        return Export(text=text, path=source, live=False)

    if cfg is None or client is None:
        raise AcquisitionError("no export file given and no directory configured")

    logger.info(
        "Querying %s base=%r filter=%r page_size=%d",
        cfg.uri, cfg.search_base, cfg.search_filter, cfg.page_size,
    )
    raw = client.export(cfg)
    text = clean_export(raw)
    if not any(is_marker(line) for line in text.splitlines()):
        raise EmptyExportError(f"directory query on {cfg.uri} returned no entries")

    write_export(export_file, text)
    logger.info("Export saved to %s (%d bytes)", export_file, len(text.encode("utf-8")))
    return Export(text=text, path=export_file, live=True)
