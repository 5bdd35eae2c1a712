"""Client-side identifier and timestamp helpers.

Ids are random 9-character base-36 strings. Collision probability is not
formally bounded; ids only need to be unique within one parent collection,
and those stay small.
"""

from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase
ID_LENGTH = 9


def generate_id() -> str:
    """Return a new random base-36 identifier."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(ID_LENGTH))


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)
