from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


DEFAULT_FILTER = "(&(objectCategory=person)(objectClass=user))"
DEFAULT_ATTRIBUTES = (
    "sAMAccountName displayName givenName sn mail userPrincipalName "
    "memberOf uidNumber gidNumber unixHomeDirectory loginShell"
)
DEFAULT_ACCOUNT_ATTRIBUTE = "sAMAccountName"
DEFAULT_PAGE_SIZE = 1000
DEFAULT_EXPORT_FILE = "ldapsearch.ldif"

BACKENDS = ("ldap3", "ldapsearch")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_MAX_PAGE_SIZE = 100000


def _clamp_int(v: Any, default: int, lo: int, hi: int) -> int:
    try:
        n = int(v)
    except Exception:
        n = int(default)
    if n < lo:
        n = lo
    if n > hi:
        n = hi
    return n


class EnvSettings(BaseSettings):
    # Directory
    server: str = Field("", alias="LDAPSPLIT_SERVER")
    port: int = Field(0, alias="LDAPSPLIT_PORT")  # 0 -> 389/636 by use_ssl
    use_ssl: bool = Field(False, alias="LDAPSPLIT_USE_SSL")
    starttls: bool = Field(False, alias="LDAPSPLIT_STARTTLS")
    tls_validate: bool = Field(False, alias="LDAPSPLIT_TLS_VALIDATE")
    bind_dn: str = Field("", alias="LDAPSPLIT_BIND_DN")
    bind_password: str = Field("", alias="LDAPSPLIT_BIND_PASSWORD")
    timeout: float = Field(30.0, alias="LDAPSPLIT_TIMEOUT")
    # whole ldapsearch run, all pages
    export_timeout: float = Field(3600.0, alias="LDAPSPLIT_EXPORT_TIMEOUT")

    # Query
    search_base: str = Field("", alias="LDAPSPLIT_SEARCH_BASE")
    search_filter: str = Field(DEFAULT_FILTER, alias="LDAPSPLIT_SEARCH_FILTER")
    attributes: str = Field(DEFAULT_ATTRIBUTES, alias="LDAPSPLIT_ATTRIBUTES")  # space/comma separated
    account_attribute: str = Field(DEFAULT_ACCOUNT_ATTRIBUTE, alias="LDAPSPLIT_ACCOUNT_ATTRIBUTE")
    page_size: int = Field(DEFAULT_PAGE_SIZE, alias="LDAPSPLIT_PAGE_SIZE")

    # Output
    output_dir: str = Field(".", alias="LDAPSPLIT_OUTPUT_DIR")
    export_file: str = Field(DEFAULT_EXPORT_FILE, alias="LDAPSPLIT_EXPORT_FILE")

    backend: str = Field("ldap3", alias="LDAPSPLIT_BACKEND")
    ldapsearch_bin: str = Field("ldapsearch", alias="LDAPSPLIT_LDAPSEARCH_BIN")

    log_level: str = Field("INFO", alias="LDAPSPLIT_LOG_LEVEL")
    log_file: str = Field("", alias="LDAPSPLIT_LOG_FILE")

    class Config:
        populate_by_name = True
        env_file = ".env"
        extra = "ignore"

    @field_validator("page_size", mode="before")
    @classmethod
    def _page_size(cls, v: Any) -> int:
        return _clamp_int(v, DEFAULT_PAGE_SIZE, 1, _MAX_PAGE_SIZE)

    @field_validator("backend", mode="before")
    @classmethod
    def _backend(cls, v: Any) -> str:
        s = str(v or "").strip().lower()
        if s not in BACKENDS:
            raise ValueError(f"unknown backend {v!r} (expected one of: {', '.join(BACKENDS)})")
        return s

    @field_validator("log_level", mode="before")
    @classmethod
    def _log_level(cls, v: Any) -> str:
        s = str(v or "INFO").strip().upper()
        return s if s in LOG_LEVELS else "INFO"

    @field_validator("account_attribute", mode="before")
    @classmethod
    def _account_attribute(cls, v: Any) -> str:
        return str(v or "").strip() or DEFAULT_ACCOUNT_ATTRIBUTE


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
