"""
Secret generation by rejection sampling.

A byte is only used when it falls below the largest multiple of the
charset length that fits in 256; everything above is discarded. Each
accepted byte therefore maps onto the charset with exactly equal
probability.
"""

from __future__ import annotations

import os
import string
from typing import Callable

ALNUM = string.ascii_letters + string.digits
DES_KEY_CHARSET = ALNUM + "!@#%^&*()-_+="

DB_PASSWORD_LENGTH = 32
DES_KEY_LENGTH = 24


def random_string(
    length: int,
    charset: str,
    source: Callable[[int], bytes] = os.urandom,
) -> str:
    """Draw ``length`` characters uniformly from ``charset``.

    Args:
        length: Number of characters to produce.
        charset: Alphabet, 1 to 256 characters.
        source: Byte source, ``os.urandom`` unless a test injects one.
    """
    if not 1 <= len(charset) <= 256:
        raise ValueError(f"charset length must be 1..256, got {len(charset)}")
    if length < 0:
        raise ValueError("length must not be negative")

    size = len(charset)
    max_valid = 256 - (256 % size)
    out: list[str] = []
    while len(out) < length:
        chunk = source(max(16, (length - len(out)) * 2))
        if not chunk:
            raise RuntimeError("random source returned no bytes")
        for byte in chunk:
            if byte < max_valid:
                out.append(charset[byte % size])
                if len(out) == length:
                    break
    return "".join(out)


def generate_db_password() -> str:
    return random_string(DB_PASSWORD_LENGTH, ALNUM)


def generate_des_key() -> str:
    return random_string(DES_KEY_LENGTH, DES_KEY_CHARSET)
