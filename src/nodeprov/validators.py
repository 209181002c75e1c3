"""Field validators and input filters used by contributor prompts.

Validators return True or raise :class:`~nodeprov.errors.ValidationError`
with the message shown to the operator before the field is asked again.
"""
from __future__ import annotations

import ipaddress
import re
from collections.abc import Callable

from .errors import ValidationError

Validator = Callable[[object], object]

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")
_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_USER_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
_UA_COMMENT_RE = re.compile(r"^[a-zA-Z0-9 .,:_\-?/@]+$")

MAX_NODE_NAME = 32


def trim_filter(value: object) -> str:
    """Return *value* as a string without surrounding whitespace."""
    return str(value).strip()


def int_filter(value: object) -> object:
    """Return digit-only answers as integers; leave anything else for validation."""
    text = str(value).strip()
    return int(text) if text.isdigit() else text


def optional(validator: Validator) -> Validator:
    """Accept empty answers; otherwise defer to *validator*."""

    def _check(value: object) -> object:
        if value is None or value == "":
            return True
        return validator(value)

    return _check


def not_empty(value: object) -> bool:
    """Reject empty answers."""
    if not value:
        raise ValidationError("Please enter something")
    return True


def is_fqdn(host: str) -> bool:
    """Return True for a fully qualified domain name (at least two labels)."""
    candidate = host.lower().rstrip(".")
    if not candidate or len(candidate) > 253:
        return False
    labels = candidate.split(".")
    if len(labels) < 2 or labels[-1].isdigit():
        return False
    return all(_LABEL_RE.match(label) for label in labels)


def is_ip(host: str) -> bool:
    """Return True for an IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


def ip_or_fqdn(value: object) -> bool:
    """Accept IP addresses and fully qualified domain names."""
    host = str(value).strip()
    if not (is_ip(host) or is_fqdn(host)):
        raise ValidationError("No IP address or fully qualified domain name")
    return True


def hostname_list(value: object) -> bool:
    """Accept a comma-separated list of IP addresses, FQDNs or single-label hosts."""
    for item in str(value).split(","):
        host = item.strip().lower()
        if not host:
            continue
        if not (is_ip(host) or is_fqdn(host) or _LABEL_RE.match(host)):
            raise ValidationError(f"'{host}' is not a valid host name or IP address")
    return True


def color(value: object) -> bool:
    """Accept six hex digits without a leading ``#``."""
    text = str(value)
    if len(text) != 6 or not _HEX_RE.match(text):
        raise ValidationError("Not a hex color.")
    return True


def node_name(value: object) -> bool:
    """Accept non-empty names of at most 32 characters."""
    text = "" if value is None else str(value)
    if not text or len(text) > MAX_NODE_NAME:
        raise ValidationError(f"Please enter anything shorter than {MAX_NODE_NAME} characters")
    return True


def username(value: object) -> bool:
    """Accept user names made of letters, digits, dot, dash and underscore."""
    if not _USER_RE.match(str(value)):
        raise ValidationError("Choose a valid username")
    return True


def ua_comment(value: object) -> bool:
    """Accept user-agent comments without shell-unsafe characters."""
    if not _UA_COMMENT_RE.match(str(value)):
        raise ValidationError(
            "Unsafe characters in UA comment. Please use only a-z, A-Z, 0-9, SPACE and .,:_?@"
        )
    return True


def port(value: object) -> bool:
    """Accept TCP port numbers."""
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ValidationError("Not a port number") from exc
    if not 1 <= number <= 65535:
        raise ValidationError("Port must be between 1 and 65535")
    return True


def path(value: object) -> bool:
    """Accept absolute filesystem paths."""
    if not str(value).startswith("/"):
        raise ValidationError("Please enter an absolute path")
    return True


__all__ = [
    "color",
    "hostname_list",
    "int_filter",
    "ip_or_fqdn",
    "is_fqdn",
    "is_ip",
    "node_name",
    "not_empty",
    "optional",
    "path",
    "port",
    "trim_filter",
    "ua_comment",
    "username",
]
