"""Request signing for the JianYing backend.

Two schemes are involved: a short MD5 signature over a fixed template,
sent with every request to the JianYing API host, and an AWS SigV4 style
credential chain for the VOD upload-authorization endpoint.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
import uuid
import zlib
from datetime import datetime
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

SIGN_PLATFORM = "4"
SIGN_APP_VERSION = "6.6.0"
SIGN_CLIENT_UA = "Cronet/TTNetVersion:d4572e53 2024-06-12 QuicVersion:4bf243e0 2023-04-17"

AWS_ALGORITHM = "AWS4-HMAC-SHA256"
AWS_TERMINATOR = "aws4_request"

TDID_ODD_YEAR_SUFFIX = "3278516897751"
TDID_FALLBACK_SUFFIX = "1234567890123"

_MULTICAST_BIT = 1 << 40


# --- Device identifier ---

def hardware_address_suffix(getnode: Callable[[], int] = uuid.getnode) -> str | None:
    """Host MAC as a 13-digit zero-padded decimal, or None if unavailable.

    ``uuid.getnode`` falls back to a random number with the multicast bit
    set when it cannot read a real address; that case counts as unavailable.
    """
    node = getnode()
    if node == 0 or node & _MULTICAST_BIT:
        return None
    return f"{node:013d}"


def generate_device_id(
    now: datetime | None = None,
    getnode: Callable[[], int] = uuid.getnode,
) -> str:
    year_digit = (now or datetime.now()).year % 10
    prefix = 390 + year_digit
    if year_digit % 2 != 0:
        suffix = TDID_ODD_YEAR_SUFFIX
    else:
        suffix = hardware_address_suffix(getnode)
        if suffix is None:
            logger.warning("No hardware address available, using fallback device id")
            suffix = TDID_FALLBACK_SUFFIX
    return f"{prefix}{suffix}"


# --- Template signature ---

def generate_sign(path: str, tdid: str, timestamp: int | None = None) -> tuple[str, str]:
    """Return ``(sign, device_time)`` for a request to ``path``."""
    device_time = str(int(time.time()) if timestamp is None else timestamp)
    tail = path[-7:]
    sign_string = f"9e2c|{tail}|{SIGN_PLATFORM}|{SIGN_APP_VERSION}|{device_time}|{tdid}|11ac"
    return hashlib.md5(sign_string.encode()).hexdigest(), device_time


def sign_headers(path: str, tdid: str, timestamp: int | None = None) -> dict[str, str]:
    sign, device_time = generate_sign(path, tdid, timestamp)
    return {
        "User-Agent": SIGN_CLIENT_UA,
        "appvr": SIGN_APP_VERSION,
        "device-time": device_time,
        "pf": SIGN_PLATFORM,
        "sign": sign,
        "sign-ver": "1",
        "tdid": tdid,
    }


# --- SigV4 credential chain ---

def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()


def _hmac(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode(), hashlib.sha256).digest()


def signing_key(secret_key: str, datestamp: str, region: str, service: str) -> bytes:
    k_date = _hmac(("AWS4" + secret_key).encode(), datestamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, AWS_TERMINATOR)


def canonical_query(query: str) -> str:
    """Sort ``key=value`` pairs by key, leaving the encoded values untouched.

    Keys compare by exact byte order, not case-folded. The VOD host verifies
    ``SpaceName&Version&s`` in that order, which a lowercase sort would break.
    """
    if not query:
        return ""
    pairs = [part.partition("=") for part in query.split("&") if part]
    pairs.sort(key=lambda p: (p[0], p[2]))
    return "&".join(f"{k}={v}" for k, _, v in pairs)


def canonical_request(
    method: str,
    query: str,
    headers: dict[str, str],
    payload: str = "",
    uri: str = "/",
) -> tuple[str, str]:
    """Return ``(canonical_request, signed_headers)``."""
    entries = sorted((k.lower(), v.strip()) for k, v in headers.items())
    canonical_headers = "".join(f"{k}:{v}\n" for k, v in entries)
    signed_headers = ";".join(k for k, _ in entries)
    request = "\n".join([
        method,
        uri,
        canonical_query(query),
        canonical_headers,
        signed_headers,
        sha256_hex(payload),
    ])
    return request, signed_headers


def aws_signature(
    secret_key: str,
    query: str,
    headers: dict[str, str],
    method: str,
    payload: str,
    region: str,
    service: str,
) -> tuple[str, str]:
    """Sign a request; ``headers`` must include ``x-amz-date``.

    Returns ``(signature, signed_headers)``.
    """
    amz_date = {k.lower(): v for k, v in headers.items()}["x-amz-date"]
    datestamp = amz_date[:8]
    request, signed_headers = canonical_request(method, query, headers, payload)
    scope = f"{datestamp}/{region}/{service}/{AWS_TERMINATOR}"
    string_to_sign = "\n".join([AWS_ALGORITHM, amz_date, scope, sha256_hex(request)])
    key = signing_key(secret_key, datestamp, region, service)
    return hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest(), signed_headers


def authorization_header(
    access_key: str,
    signature: str,
    datestamp: str,
    region: str,
    service: str,
    signed_headers: str,
) -> str:
    return (
        f"{AWS_ALGORITHM} Credential={access_key}/{datestamp}/{region}/{service}/{AWS_TERMINATOR}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )


# --- Upload checksum ---

def file_crc32(path: Path, chunk_size: int = 1 << 20) -> str:
    crc = 0
    with open(path, "rb") as fh:
        while chunk := fh.read(chunk_size):
            crc = zlib.crc32(chunk, crc)
    return f"{crc & 0xFFFFFFFF:08x}"
