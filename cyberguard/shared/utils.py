import re
import html
import ipaddress
from typing import Optional

from email_validator import validate_email, EmailNotValidError
from fastapi import Request

from .config import trusted_proxies

TAG_PATTERN = re.compile(r"<[^>]*>?")


def strip_tags(text: str) -> str:
    return TAG_PATTERN.sub("", text)


def sanitize_input(data):
    """Trim, drop markup tags and HTML-encode (quotes included). Lists and dicts are sanitized element-wise."""
    if isinstance(data, dict):
        return {k: sanitize_input(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [sanitize_input(item) for item in data]
    if data is None:
        return None
    return html.escape(strip_tags(str(data).strip()), quote=True)


def is_valid_email(value: str) -> bool:
    """Syntax check only; no DNS lookups"""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _valid_ip(value: str) -> Optional[str]:
    candidate = value.strip()
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def _forwarded_client(value: Optional[str], proxies: frozenset) -> Optional[str]:
    """Rightmost X-Forwarded-For hop that is not one of our own proxies"""
    if not value:
        return None
    for hop in reversed(value.split(",")):
        ip = _valid_ip(hop)
        if ip is None:
            return None
        if ip not in proxies:
            return ip
    return None


def get_client_ip(request: Request) -> str:
    """
    The socket peer, unless the peer is a trusted proxy: then the forwarded
    client (X-Forwarded-For, then X-Real-IP). Client-supplied headers from
    untrusted peers are ignored.
    """
    peer = request.client.host if request.client and request.client.host else None
    proxies = trusted_proxies()
    if peer is not None and peer in proxies:
        forwarded = _forwarded_client(request.headers.get("x-forwarded-for"), proxies)
        if forwarded is None:
            forwarded = _valid_ip(request.headers.get("x-real-ip", ""))
        if forwarded:
            return forwarded
    return peer or "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "unknown")
