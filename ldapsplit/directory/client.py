from __future__ import annotations

import base64
import logging
import os
import ssl
import subprocess
import tempfile
from typing import Any, Callable, Iterator, Optional, Protocol

from ldap3 import Connection, Server, SUBTREE, Tls
from ldap3.core.exceptions import LDAPException

from ..errors import AcquisitionError, ConfigError
from ..ldif import format_entry
from .models import DirectoryConfig

logger = logging.getLogger(__name__)

# RFC 2696 Simple Paged Results control
PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"


class DirectoryClient(Protocol):
    """Anything that can run the configured paged search and return it as LDIF text."""

    def export(self, cfg: DirectoryConfig) -> str:
        ...


class Ldap3DirectoryClient:
    """Paged export through the ldap3 library.

    The text produced mirrors what ``ldapsearch -E pr=N/noprompt`` prints:
    entries separated by blank lines, a ``# pagedresults`` line after every
    page and ``# search reference`` blocks for referrals. Control lines are
    removed later by the export cleaner, so both backends go through the same
    post-processing.
    """

    def __init__(self, connection_factory: Optional[Callable[[DirectoryConfig], Connection]] = None) -> None:
        self._connection_factory = connection_factory

    @staticmethod
    def _server(cfg: DirectoryConfig) -> Server:
        tls = Tls(validate=ssl.CERT_REQUIRED if cfg.tls_validate else ssl.CERT_NONE)
        return Server(
            host=cfg.host,
            port=cfg.effective_port,
            use_ssl=cfg.secure,
            tls=tls,
            connect_timeout=float(cfg.timeout),
        )

    def _conn(self, cfg: DirectoryConfig) -> Connection:
        if self._connection_factory is not None:
            return self._connection_factory(cfg)
        conn = Connection(
            self._server(cfg),
            user=cfg.bind_principal or None,
            password=cfg.bind_password or None,
            auto_bind=False,
            receive_timeout=float(cfg.timeout),
        )
        conn.open()
        if cfg.starttls:
            conn.start_tls()
        return conn

    def export(self, cfg: DirectoryConfig) -> str:
        if not cfg.host:
            raise ConfigError("LDAP server is not set")
        if not cfg.search_base:
            raise ConfigError("search base is not set")

        conn: Connection | None = None
        try:
            conn = self._conn(cfg)
            if not conn.bind():
                res = dict(conn.result or {})
                raise AcquisitionError(
                    f"bind as {cfg.bind_principal or '<anonymous>'} failed: "
                    f"{res.get('description', 'unknown error')} {res.get('message', '')}".strip()
                )
            logger.info("Bound to %s as %s", cfg.uri, cfg.bind_principal or "<anonymous>")
            return "".join(self._pages(conn, cfg))
        except LDAPException as e:
            raise AcquisitionError(f"LDAP error talking to {cfg.uri}: {e}") from e
        finally:
            try:
                if conn:
                    conn.unbind()
            except LDAPException:
                pass

    def _pages(self, conn: Connection, cfg: DirectoryConfig) -> Iterator[str]:
        attrs = cfg.requested_attributes
        cookie: Any = None
        page = 0
        total = 0
        while True:
            page += 1
            conn.search(
                search_base=cfg.search_base,
                search_filter=cfg.search_filter,
                search_scope=SUBTREE,
                attributes=attrs,
                paged_size=cfg.page_size,
                paged_cookie=cookie,
            )
            res = dict(conn.result or {})
            code = res.get("result", 0)
            if code != 0:
                raise AcquisitionError(
                    f"search failed on page {page} (result {code}): "
                    f"{res.get('description', '')} {res.get('message', '')}".strip()
                )

            blocks: list[str] = []
            entries = 0
            for item in conn.response or []:
                kind = item.get("type")
                if kind == "searchResEntry":
                    blocks.append(format_entry(item.get("dn", ""), item.get("raw_attributes") or {}))
                    entries += 1
                elif kind == "searchResRef":
                    refs = "".join(f"ref: {uri}\n" for uri in item.get("uri") or [])
                    blocks.append(f"# search reference\n{refs}")
            total += entries

            controls = res.get("controls") or {}
            ctrl = controls.get(PAGED_RESULTS_OID) or {}
            cookie = (ctrl.get("value") or {}).get("cookie")

            marker = base64.b64encode(cookie).decode("ascii") if cookie else ""
            blocks.append(f"# pagedresults: cookie={marker}\n")
            logger.debug("Page %d: %d entries (total %d)", page, entries, total)
            yield "\n".join(blocks) + "\n"

            if not cookie:
                break
        logger.info("Paged search finished: %d entries in %d page(s)", total, page)


class LdapsearchDirectoryClient:
    """Paged export through the OpenLDAP ``ldapsearch`` utility."""

    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self._run = runner

    @staticmethod
    def build_command(cfg: DirectoryConfig, password_file: str = "") -> list[str]:
        cmd = [cfg.ldapsearch_bin or "ldapsearch", "-x", "-H", cfg.uri]
        if cfg.starttls and not cfg.secure:
            cmd.append("-ZZ")
        if cfg.bind_principal:
            cmd += ["-D", cfg.bind_principal]
            if password_file:
                cmd += ["-y", password_file]
        cmd += [
            "-b", cfg.search_base,
            "-E", f"pr={int(cfg.page_size)}/noprompt",
            "-o", "ldif-wrap=no",
            "-o", f"nettimeout={max(1, int(cfg.timeout))}",
            cfg.search_filter,
            *cfg.requested_attributes,
        ]
        return cmd

    def export(self, cfg: DirectoryConfig) -> str:
        if not cfg.host:
            raise ConfigError("LDAP server is not set")
        if not cfg.search_base:
            raise ConfigError("search base is not set")

        env = dict(os.environ)
        if not cfg.tls_validate:
            env["LDAPTLS_REQCERT"] = "never"

        pw_path = ""
        try:
            if cfg.bind_principal and cfg.bind_password:
                # ldapsearch -y reads the whole file, so no trailing newline
                fd, pw_path = tempfile.mkstemp(prefix="ldapsplit-", suffix=".pw")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(cfg.bind_password)
            cmd = self.build_command(cfg, pw_path)
            logger.debug("Running %s", " ".join(cmd))
            try:
                proc = self._run(
                    cmd, capture_output=True, text=True, env=env, check=False,
                    timeout=float(cfg.export_timeout),
                )
            except FileNotFoundError as e:
                raise AcquisitionError(f"{cmd[0]} not found: {e}") from e
            except subprocess.TimeoutExpired as e:
                raise AcquisitionError(f"{cmd[0]} did not finish within {e.timeout:g}s") from e
        finally:
            if pw_path:
                os.remove(pw_path)

        if proc.returncode != 0:
            err = (proc.stderr or "").strip() or "no error output"
            raise AcquisitionError(f"{cmd[0]} exited with status {proc.returncode}: {err}")
        return proc.stdout or ""


def build_client(backend: str) -> DirectoryClient:
    name = (backend or "").strip().lower()
    if name == "ldap3":
        return Ldap3DirectoryClient()
    if name == "ldapsearch":
        return LdapsearchDirectoryClient()
    raise ConfigError(f"unknown directory backend {backend!r}")
