"""Fetch user entries with one paged LDAP search and split them into per-user LDIF files."""

__version__ = "1.0.0"
