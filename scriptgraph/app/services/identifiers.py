from __future__ import annotations

import re

FALLBACK_IDENTIFIER = "Result"
IDENTIFIER_SEPARATORS = r"[-. _]"


def sanitize_identifier(text: str) -> str:
    fragments = re.split(IDENTIFIER_SEPARATORS, text)
    joined = "".join(fragment[:1].upper() + fragment[1:] for fragment in fragments if fragment)
    result = re.sub(r"[^A-Za-z0-9]", "", joined)
    return result or FALLBACK_IDENTIFIER


def identity_suffix(block_id: str, length: int) -> str:
    safe_id = re.sub(r"[^A-Za-z0-9]", "", block_id)
    return safe_id[: max(1, length)]
