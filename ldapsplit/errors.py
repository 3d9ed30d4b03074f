from __future__ import annotations


class LdapSplitError(Exception):
    """Base class for every failure the CLI reports with a non-zero exit."""


class ConfigError(LdapSplitError):
    """Missing or inconsistent configuration (server, base DN, options)."""


class AcquisitionError(LdapSplitError):
    """The export could not be obtained (bind/search failure, ldapsearch error, unreadable file)."""


class EmptyExportError(AcquisitionError):
    """The export document is missing or contains no data."""


class RecordError(LdapSplitError):
    """A single record could not be turned into an output file."""

    def __init__(self, message: str, *, index: int | None = None, dn: str = "") -> None:
        super().__init__(message)
        self.index = index
        self.dn = dn

    def __str__(self) -> str:
        msg = super().__str__()
        where = []
        if self.index is not None:
            where.append(f"record #{self.index}")
        if self.dn:
            where.append(self.dn)
        if not where:
            return msg
        return f"{', '.join(where)}: {msg}"


class DecodeError(RecordError):
    """An attribute value marked as base64 (``attr::``) is not valid base64/UTF-8."""


class InvalidNameError(RecordError):
    """The account name cannot be used as a file name stem."""


class OutputExistsError(RecordError):
    """The target ``<name>.ldif`` already exists."""
