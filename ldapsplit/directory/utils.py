from __future__ import annotations

import re
from typing import Iterable


def escape_ldap_filter_value(value: str) -> str:
    """RFC 4515 escaping for LDAP filter values."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\5c")
        elif ch == "*":
            out.append("\\2a")
        elif ch == "(":
            out.append("\\28")
        elif ch == ")":
            out.append("\\29")
        elif ch == "\x00":
            out.append("\\00")
        else:
            out.append(ch)
    return "".join(out)


def split_attributes(values: str | Iterable[str] | None) -> list[str]:
    """Flatten space/comma separated attribute names, keeping the first spelling of each.

    >>> split_attributes(["mail sn", "Mail,uid"])
    ['mail', 'sn', 'uid']
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: list[str] = []
    seen: set[str] = set()
    for chunk in values:
        for name in re.split(r"[\s,]+", chunk or ""):
            if not name:
                continue
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            out.append(name)
    return out


def base_dn_to_domain(base_dn: str) -> str:
    """DC=corp,DC=example,DC=com -> corp.example.com (empty when the DN has no DC parts)."""
    parts: list[str] = []
    for rdn in (base_dn or "").split(","):
        key, sep, val = rdn.strip().partition("=")
        if sep and key.strip().lower() == "dc" and val.strip():
            parts.append(val.strip())
    return ".".join(parts)


def account_filter(base_filter: str, names: Iterable[str], attribute: str = "sAMAccountName") -> str:
    """AND the base filter with an OR over the given account names."""
    names = [n.strip() for n in names if n and n.strip()]
    if not names:
        return base_filter
    terms = "".join(f"({attribute}={escape_ldap_filter_value(n)})" for n in names)
    accounts = terms if len(names) == 1 else f"(|{terms})"
    base = (base_filter or "").strip()
    if not base:
        return accounts
    if not base.startswith("("):
        base = f"({base})"
    return f"(&{base}{accounts})"
