"""Request-level guards: same-origin enforcement and client fingerprinting."""
from __future__ import annotations

import hashlib
from collections.abc import Mapping
from urllib.parse import urlsplit

USER_AGENT_FINGERPRINT_CHARS = 180

_DEFAULT_PORTS = {"http": 80, "https": 443}


class OriginMismatchError(RuntimeError):
    """Raised when a mutating request does not come from this host."""


def _expected_host(headers: Mapping[str, str]) -> str:
    return (headers.get("x-forwarded-host") or headers.get("host") or "").strip().lower()


def _normalize_port(host: str) -> str:
    if host == "localhost":
        return "localhost:80"
    return host


def _source_host(value: str) -> str | None:
    try:
        parsed = urlsplit(value.strip())
        hostname = parsed.hostname
        port = parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not hostname:
        return None
    if ":" in hostname:
        hostname = f"[{hostname}]"
    if port is None or port == _DEFAULT_PORTS.get(parsed.scheme.lower()):
        return hostname.lower()
    return f"{hostname.lower()}:{port}"


def _matches(source: str, expected_host: str) -> bool:
    source_host = _source_host(source)
    return source_host is not None and _normalize_port(source_host) == _normalize_port(expected_host)


def assert_same_origin(headers: Mapping[str, str]) -> None:
    """Fail unless Origin (or, when absent, Referer) points at the request host.

    ``headers`` must be a case-insensitive mapping such as Starlette's ``Headers``.
    """

    expected_host = _expected_host(headers)
    if not expected_host:
        raise OriginMismatchError("Missing host header.")

    origin = headers.get("origin")
    if origin:
        if not _matches(origin, expected_host):
            raise OriginMismatchError("Invalid request origin.")
        return

    referer = headers.get("referer")
    if referer:
        if not _matches(referer, expected_host):
            raise OriginMismatchError("Invalid request referrer.")
        return

    raise OriginMismatchError("Missing origin/referrer headers.")


def client_ip(headers: Mapping[str, str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return "unknown"


def client_fingerprint(headers: Mapping[str, str]) -> str:
    """Derive the opaque rate-limit key for the calling client."""

    ip = client_ip(headers)
    user_agent = (headers.get("user-agent") or "")[:USER_AGENT_FINGERPRINT_CHARS]
    return hashlib.sha256(f"{ip}|{user_agent}".encode("utf-8")).hexdigest()
