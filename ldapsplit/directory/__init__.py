"""Directory access: connection settings and the clients that produce an LDIF export.

Public API:
    - DirectoryConfig
    - DirectoryClient, Ldap3DirectoryClient, LdapsearchDirectoryClient
    - build_client
"""

from .models import DirectoryConfig
from .client import (
    DirectoryClient,
    Ldap3DirectoryClient,
    LdapsearchDirectoryClient,
    build_client,
)

__all__ = [
    "DirectoryConfig",
    "DirectoryClient",
    "Ldap3DirectoryClient",
    "LdapsearchDirectoryClient",
    "build_client",
]
