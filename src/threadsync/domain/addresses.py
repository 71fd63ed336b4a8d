"""Email address normalization shared by normalizers and thread aggregates."""

from __future__ import annotations

from email.utils import getaddresses


def extract_email(addr: str) -> str:
    """Extract the bare address from 'Name <email@domain.com>' format."""
    addr = addr.lower().strip()
    start = addr.find("<")
    end = addr.find(">", start + 1) if start != -1 else -1
    if end != -1:
        return addr[start + 1 : end].strip()

    bare = addr.strip('"<> ')
    # Stray brackets or spaces left over mean there is no usable address
    if any(c in bare for c in "<> \t"):
        return ""
    return bare


def split_addresses(value: str | None) -> list[str]:
    """Split a header value holding one or more addresses into bare addresses.

    Order is preserved and empty entries are dropped.
    """
    if not value:
        return []

    out: list[str] = []
    for name, addr in getaddresses([value]):
        bare = extract_email(addr or name)
        if bare and bare not in out:
            out.append(bare)
    return out


def normalize_address(value: str | None) -> str:
    """Normalize an address header to a single comparable address.

    For multi-address values the first address is used. Returns "" when the
    value holds no address at all.
    """
    addresses = split_addresses(value)
    if addresses:
        return addresses[0]
    return extract_email(value or "")


def participant_addresses(*values: str | None) -> set[str]:
    """All normalized addresses found in the given header values."""
    found: set[str] = set()
    for value in values:
        found.update(split_addresses(value))
        first = normalize_address(value)
        if first:
            found.add(first)
    return found
