"""Utility functions for niomon."""

from __future__ import annotations

import base64
import hashlib
import ipaddress
import re
import secrets
import string
from pathlib import Path

_ALPHANUMERIC = string.ascii_letters + string.digits
_SERVICE_NAME_RE = re.compile(r"^\w+$")


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the niomon data directory (~/.niomon)."""
    return ensure_dir(Path.home() / ".niomon")


def sha256(data: bytes | str) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def base64url(buf: bytes) -> str:
    """
    Encode bytes as URL-safe base64 without padding.

    base64url(b"Hello world") == "SGVsbG8gd29ybGQ"
    """
    return base64.urlsafe_b64encode(buf).decode("ascii").rstrip("=")


def random_string(length: int = 20) -> str:
    """Cryptographically strong alphanumeric string."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(_ALPHANUMERIC) for _ in range(length))


def is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def split_on_first(source: str, separator: str) -> list[str]:
    """Split on the first separator; [] when either side is empty or separator absent."""
    if not isinstance(source, str) or not isinstance(separator, str):
        raise TypeError("Expected the arguments to be of type `str`")
    if source == "" or separator == "":
        return []
    index = source.find(separator)
    if index == -1:
        return []
    return [source[:index], source[index + len(separator):]]


def resolve_service_host(origin: str, service_name: str, zone: str | None = None) -> str:
    """
    Resolve the host of a sibling service from an origin.

    The first hostname label is replaced by the service name; a ``-suffix`` on the
    original label (or an explicit zone) is carried over:

        resolve_service_host("https://widgets.niomon.dev", "app") == "https://app.niomon.dev"
        resolve_service_host("https://api-staging.niomon.dev:8443/x", "app") == "https://app-staging.niomon.dev:8443"
    """
    scheme, sep, host_with_tail = origin.partition("://")
    if not sep or not host_with_tail:
        raise ValueError("Invalid origin or service name")
    host = re.split(r"[/?#]", host_with_tail, maxsplit=1)[0]
    hostname, _, port = host.partition(":")
    if not hostname or is_ip_address(hostname) or not _SERVICE_NAME_RE.match(service_name):
        raise ValueError("Invalid origin or service name")

    labels = hostname.split(".")
    suffix = split_on_first(labels[0], "-")
    subdomain = service_name
    if zone:
        subdomain += "-" + zone
    elif suffix and suffix[1]:
        subdomain += "-" + suffix[1]
    labels[0] = subdomain

    resolved = ".".join(labels)
    if port:
        resolved += ":" + port
    return f"{scheme}://{resolved}"
