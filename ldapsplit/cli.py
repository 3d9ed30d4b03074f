from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Optional, Sequence

from pydantic import ValidationError

from . import __version__
from .directory import DirectoryConfig, build_client
from .directory.utils import account_filter, split_attributes
from .env_settings import BACKENDS, EnvSettings, get_env
from .errors import ConfigError, LdapSplitError
from .export import acquire_export
from .log_config import setup_logging
from .splitter import split_export

logger = logging.getLogger("ldapsplit")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ldapsplit",
        description=(
            "Export user entries from an LDAP directory with one paged search "
            "(or read an existing LDIF export) and split them into one "
            "<account-name>.ldif file per user."
        ),
        epilog="Every option can also be set through LDAPSPLIT_* environment variables or a .env file.",
    )
    p.add_argument("-f", "--file", metavar="LDIF", help="split this export instead of querying the directory")

    g = p.add_argument_group("directory")
    g.add_argument("-s", "--server", help="LDAP server host name or ldap[s]:// URI")
    g.add_argument("-p", "--port", type=int, help="server port (default 389, 636 with --ssl)")
    g.add_argument("--ssl", action="store_true", default=None, help="connect with LDAPS")
    g.add_argument("--starttls", action="store_true", default=None, help="upgrade the connection with StartTLS")
    g.add_argument("-D", "--bind-dn", help="bind DN, UPN or user name")
    g.add_argument("-w", "--password", help="bind password (prompted when a bind DN is set and no password is given)")
    g.add_argument("-b", "--base", help="search base DN")
    g.add_argument("-F", "--filter", help="search filter")
    g.add_argument(
        "-a", "--attributes", action="append", metavar="ATTR",
        help="extra attribute(s) to request; repeatable, space or comma separated",
    )
    g.add_argument("-u", "--user", action="append", metavar="NAME", help="only export these account names; repeatable")
    g.add_argument("--account-attribute", help="attribute that names the output files (default sAMAccountName)")
    g.add_argument("--page-size", type=int, help="entries per page (default 1000)")
    g.add_argument("--backend", choices=BACKENDS, help="query with the ldap3 library or the ldapsearch utility")

    o = p.add_argument_group("output")
    o.add_argument("-o", "--output-dir", help="directory for the per-user files (default: current directory)")
    o.add_argument("--export-file", help="where a live export is saved before splitting (default ldapsearch.ldif)")
    o.add_argument("--force", action="store_true", help="overwrite existing <name>.ldif files")

    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--log-file", help="also write the log to this file")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _pick(value, default):
    return default if value is None else value


def build_config(args: argparse.Namespace, env: EnvSettings) -> DirectoryConfig:
    server = (_pick(args.server, env.server) or "").strip()
    base = (_pick(args.base, env.search_base) or "").strip()
    if not server:
        raise ConfigError("no LDAP server given (--server or LDAPSPLIT_SERVER)")
    if not base:
        raise ConfigError("no search base given (--base or LDAPSPLIT_SEARCH_BASE)")

    account_attribute = (_pick(args.account_attribute, env.account_attribute) or "").strip() or env.account_attribute
    bind_dn = _pick(args.bind_dn, env.bind_dn) or ""
    password = _pick(args.password, env.bind_password) or ""
    if bind_dn and not password:
        password = getpass.getpass(f"Password for {bind_dn}: ")

    search_filter = _pick(args.filter, env.search_filter)
    if args.user:
        search_filter = account_filter(search_filter, split_attributes(args.user), account_attribute)

    page_size = _pick(args.page_size, env.page_size)
    if page_size < 1:
        raise ConfigError(f"page size must be positive, got {page_size}")

    return DirectoryConfig(
        server=server,
        search_base=base,
        bind_dn=bind_dn,
        bind_password=password,
        search_filter=search_filter,
        attributes=tuple(split_attributes([env.attributes, *(args.attributes or [])])),
        account_attribute=account_attribute,
        page_size=page_size,
        port=_pick(args.port, env.port),
        use_ssl=_pick(args.ssl, env.use_ssl),
        starttls=_pick(args.starttls, env.starttls),
        tls_validate=env.tls_validate,
        timeout=env.timeout,
        export_timeout=env.export_timeout,
        ldapsearch_bin=env.ldapsearch_bin,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        env = get_env()
    except ValidationError as e:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: invalid environment settings:\n{e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(level="DEBUG" if args.verbose else env.log_level, log_file=_pick(args.log_file, env.log_file))

    output_dir = _pick(args.output_dir, env.output_dir) or "."
    account_attribute = (_pick(args.account_attribute, env.account_attribute) or "").strip() or env.account_attribute

    cfg = client = None
    if not args.file:
        try:
            cfg = build_config(args, env)
            client = build_client(_pick(args.backend, env.backend))
        except ConfigError as e:
            parser.print_usage(sys.stderr)
            logger.error("Configuration error: %s", e)
            return EXIT_USAGE

    try:
        export = acquire_export(
            cfg, client,
            source=args.file or "",
            export_file=_pick(args.export_file, env.export_file),
        )
        result = split_export(
            export.text, output_dir, account_attribute,
            overwrite=args.force, protected=[export.path],
        )
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_USAGE
    except LdapSplitError as e:
        logger.error("%s", e)
        return EXIT_FAILURE
    except OSError as e:
        logger.error("Filesystem error: %s", e)
        return EXIT_FAILURE

    if not result.ok:
        logger.error(
            "%d record(s) were not written (%d without %s, %d failed); see warnings above",
            len(result.unmatched) + len(result.errors),
            len(result.unmatched), account_attribute, len(result.errors),
        )
        return EXIT_FAILURE
    logger.info("Done: %d file(s) in %s", len(result.written), output_dir)
    return EXIT_OK
