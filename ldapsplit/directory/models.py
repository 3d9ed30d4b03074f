from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from ..env_settings import DEFAULT_ACCOUNT_ATTRIBUTE, DEFAULT_FILTER, DEFAULT_PAGE_SIZE
from .utils import base_dn_to_domain, split_attributes


@dataclass(frozen=True)
class DirectoryConfig:
    """Everything one export run needs to talk to the directory.

    Built once from settings and command line options, then handed to the
    directory client; nothing reads connection parameters from anywhere else.
    """

    server: str
    search_base: str
    bind_dn: str = ""
    bind_password: str = ""
    search_filter: str = DEFAULT_FILTER
    attributes: tuple[str, ...] = ()
    account_attribute: str = DEFAULT_ACCOUNT_ATTRIBUTE
    page_size: int = DEFAULT_PAGE_SIZE
    port: int = 0
    use_ssl: bool = False
    starttls: bool = False
    tls_validate: bool = False
    timeout: float = 30.0
    export_timeout: float = 3600.0
    ldapsearch_bin: str = "ldapsearch"

    @property
    def _url(self):
        s = (self.server or "").strip()
        if "://" not in s:
            return None
        return urlsplit(s)

    @property
    def secure(self) -> bool:
        u = self._url
        if u is not None:
            return u.scheme.lower() == "ldaps"
        return bool(self.use_ssl)

    @property
    def host(self) -> str:
        u = self._url
        if u is not None:
            return u.hostname or ""
        return (self.server or "").strip()

    @property
    def effective_port(self) -> int:
        u = self._url
        if u is not None and u.port:
            return u.port
        if self.port:
            return int(self.port)
        return 636 if self.secure else 389

    @property
    def uri(self) -> str:
        scheme = "ldaps" if self.secure else "ldap"
        return f"{scheme}://{self.host}:{self.effective_port}"

    @property
    def bind_principal(self) -> str:
        u = (self.bind_dn or "").strip()
        if not u:
            return ""
        # full DN, UPN or DOMAIN\user are passed through
        if "=" in u or "@" in u or "\\" in u:
            return u
        d = base_dn_to_domain(self.search_base)
        return f"{u}@{d}" if d else u

    @property
    def requested_attributes(self) -> list[str]:
        return split_attributes([self.account_attribute, *self.attributes])
