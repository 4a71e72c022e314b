"""URL normalization and reachability guardrails for audit targets."""

import ipaddress
from urllib.parse import urlparse, urlunparse

from aeo_audit.utils.exceptions import InvalidURLError

ALLOWED_SCHEMES = ("http", "https")

# Hostnames that only resolve on the caller's machine
LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}
LOCAL_SUFFIXES = (".localhost", ".local", ".internal")


def _is_private_ip(hostname: str) -> bool:
    """Return True if hostname is an IP literal outside the public address space."""
    try:
        ip = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def normalize_url(raw_url: str) -> str:
    """
    Normalize an audit target URL.

    Adds an https scheme when missing, lowercases the host, and strips the
    trailing slash from the path. Hosts an external crawler cannot reach
    (localhost, loopback or private addresses) are rejected.

    Args:
        raw_url: URL or bare domain supplied by the caller

    Returns:
        Normalized absolute URL

    Raises:
        InvalidURLError: If the URL is malformed or not publicly reachable
    """
    if raw_url is None or not str(raw_url).strip():
        raise InvalidURLError("URL is required")

    candidate = str(raw_url).strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    parsed = urlparse(candidate)
    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidURLError(f"Unsupported URL scheme: {parsed.scheme}")

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise InvalidURLError(f"URL has no hostname: {raw_url}")
    if any(ch.isspace() for ch in hostname):
        raise InvalidURLError(f"Malformed hostname: {hostname}")

    if hostname in LOCAL_HOSTNAMES or hostname.endswith(LOCAL_SUFFIXES):
        raise InvalidURLError(f"Host is not reachable by the crawl provider: {hostname}")
    if _is_private_ip(hostname):
        raise InvalidURLError(f"Host resolves to a private or loopback address: {hostname}")
    if "." not in hostname and ":" not in hostname:
        raise InvalidURLError(f"Hostname is not fully qualified: {hostname}")

    try:
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(f"Invalid port in URL: {raw_url}") from e

    netloc = hostname if ":" not in hostname else f"[{hostname}]"
    if port is not None:
        netloc = f"{netloc}:{port}"

    path = parsed.path.rstrip("/")
    return urlunparse((scheme, netloc, path, "", parsed.query, ""))


def extract_root_domain(url: str) -> str:
    """
    Extract the site key used for upserts (host without a leading www.).

    Args:
        url: Normalized URL

    Returns:
        Lowercase domain
    """
    hostname = (urlparse(url).hostname or "").lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def site_base_url(url: str) -> str:
    """Return scheme://host[:port] for a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
