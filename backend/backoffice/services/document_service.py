# Overview: Document identifiers for sales and tickets.

from __future__ import annotations

import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_lowercase


def new_document_id(prefix: str) -> str:
    """
    Allocate a document id such as "S1760789012345k3x9q".

    Epoch milliseconds followed by five random base36 characters. Unique
    enough within one store without any coordination; ids are opaque to
    callers and never parsed.
    """
    if not prefix:
        raise ValueError("prefix is required")
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(5))
    return f"{prefix}{int(time.time() * 1000)}{suffix}"
