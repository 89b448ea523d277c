"""
Urn tokens: URL-safe base64 of a backend identifier, without '=' padding.

APS expects model urns in exactly this form, and the same encoding is used for
bucket keys so that every identifier handed to clients is opaque and safe to put
in a path, a query string or a location fragment.
"""

import base64
import binascii
import re

from core.exceptions import DecodeError

_PAD = "="
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")


def encode_urn(identifier: str) -> str:
    encoded = base64.urlsafe_b64encode(identifier.encode("utf-8")).decode("ascii")
    return encoded.rstrip(_PAD)


def decode_urn(token: str) -> str:
    if not isinstance(token, str) or not _TOKEN_PATTERN.match(token):
        raise DecodeError(f"Invalid urn '{token}': only URL-safe base64 characters are allowed.")

    # A single leftover character can never be produced by the encoder
    if len(token) % 4 == 1:
        raise DecodeError(f"Invalid urn '{token}': truncated token.")

    padded = token + _PAD * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise DecodeError(f"Invalid urn '{token}': {e}", original_error=e)
