"""
Base64 <-> bytes helpers used by the HTTP layer.

decode() is forgiving about formatting: data-URI headers,
line breaks and stray characters are dropped before decoding. It does not
look at the decoded bytes; the pipeline rejects non-images when it opens
them.
"""

import base64
import binascii
import re

from errors import DecodeError

_DATA_URI_PREFIX = re.compile(r"^\s*data:[^,]*?;base64,", re.IGNORECASE)
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def _strip_prefix(data: str) -> str:
    match = _DATA_URI_PREFIX.match(data)
    if match:
        return data[match.end():]
    if "base64," in data:
        return data.split("base64,", 1)[1]
    return data


def decode(data) -> bytes:
    """Return the raw bytes of a base64 string or ``data:`` URI.

    Raises:
        DecodeError: if the input is absent, blank, or yields no bytes.
    """
    if not isinstance(data, str) or not data.strip():
        raise DecodeError("Image (base64) not provided.")

    body = _strip_prefix(data)
    # URL-safe alphabet maps onto the standard one; padding is rebuilt below
    body = body.replace("-", "+").replace("_", "/")
    body = _NON_BASE64.sub("", body)
    if not body:
        raise DecodeError("Image (base64) contains no base64 data.")

    remainder = len(body) % 4
    if remainder == 1:
        # a single trailing sextet cannot encode a byte
        body = body[:-1]
    elif remainder:
        body += "=" * (4 - remainder)

    try:
        raw = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 image: {exc}") from exc

    if not raw:
        raise DecodeError("Image (base64) decoded to an empty buffer.")
    return raw


def encode(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")
