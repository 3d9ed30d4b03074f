import logging

import pytest

from ldapsplit import log_config
from ldapsplit.env_settings import get_env


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Each test runs in its own directory with no LDAPSPLIT_* variables and a fresh settings cache."""
    import os

    for key in list(os.environ):
        if key.startswith("LDAPSPLIT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_env.cache_clear()
    yield
    get_env.cache_clear()
    root = logging.getLogger()
    for h in (log_config._console_handler, log_config._file_handler):
        if h is not None and h in root.handlers:
            root.removeHandler(h)
            h.close()
    log_config._console_handler = None
    log_config._file_handler = None


@pytest.fixture
def two_users_ldif():
    return (
        "# extended LDIF\n"
        "#\n"
        "# LDAPv3\n"
        "\n"
        "dn: CN=John Doe,OU=Users,DC=example,DC=com\n"
        "sAMAccountName: jdoe\n"
        "\n"
        "mail: jdoe@example.com\n"
        "\n"
        "dn: CN=John Two,OU=Users,DC=example,DC=com\n"
        "sAMAccountName:: am9objJ=\n"
        "mail: john2@example.com\n"
        "\n"
    )
