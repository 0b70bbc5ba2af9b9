from __future__ import annotations

import re
from typing import Mapping

LOCALHOST = "127.0.0.1"
_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")


def extract_ipv4(value: str) -> str:
    """Reduce an address to IPv4, mapping loopback and unknown forms to localhost."""
    if value == "::1":
        return LOCALHOST
    if value.startswith("::ffff:"):
        return value[len("::ffff:"):]
    if _IPV4_RE.match(value):
        return value
    return LOCALHOST


def get_client_ipv4(headers: Mapping[str, str]) -> str:
    forwarded = headers.get("x-forwarded-for")
    real_ip = headers.get("x-real-ip")
    cf_connecting_ip = headers.get("cf-connecting-ip")

    client_ip = "unknown"
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    elif real_ip:
        client_ip = real_ip
    elif cf_connecting_ip:
        client_ip = cf_connecting_ip
    return extract_ipv4(client_ip)
