"""Prefix-typed, unguessable token code generation.

Codes look like `PRO-<24 hex>` or `VID-<20 hex>`. Uniqueness is checked against
the store before use and enforced again by the unique constraint at insert
time; both collision paths share one bounded retry budget.
"""

import re
import secrets
from typing import Callable

from onceview.common.config import settings
from onceview.common.errors import IdentifierExhausted, ValidationError
from onceview.common.logging import logger
from onceview.common.metrics import identifier_collisions_total

PROFILE = "profile"
VIDEO = "video"

PREFIXES = {PROFILE: "PRO", VIDEO: "VID"}
# Random bytes per kind; hex doubles the length (24 and 20 chars, 96 and 80 bits).
SUFFIX_BYTES = {PROFILE: 12, VIDEO: 10}

TOKEN_CODE_RE = re.compile(r"^(PRO|VID)-[A-Za-z0-9]{6,24}$")


def generate_token_code(kind: str) -> str:
    """Return a fresh random code for `kind` without checking uniqueness."""

    if kind not in PREFIXES:
        raise ValueError(f"unknown token kind: {kind}")
    return f"{PREFIXES[kind]}-{secrets.token_hex(SUFFIX_BYTES[kind])}"


def parse_token_code(code: str) -> str:
    """Validate routing format and return the kind the prefix selects."""

    if not isinstance(code, str) or not TOKEN_CODE_RE.match(code):
        raise ValidationError("token", "Invalid token format")
    return PROFILE if code.startswith("PRO-") else VIDEO


def record_collision(kind: str, code: str, attempt: int) -> None:
    logger.warning("token code collision kind=%s attempt=%s prefix=%s", kind, attempt, code[:4])
    identifier_collisions_total.labels(service=settings.service_name, kind=kind).inc()


def issue_unique_code(
    kind: str,
    claim: Callable[[str], bool],
    max_attempts: int | None = None,
    generator: Callable[[str], str] | None = None,
) -> str:
    """Generate candidate codes until `claim` accepts one.

    `claim(code)` persists the code and returns True, or returns False when the
    code is already taken. Raises `IdentifierExhausted` once `max_attempts`
    candidates have collided.
    """

    attempts = max_attempts or settings.identifier_max_attempts
    generate = generator or generate_token_code
    for attempt in range(1, attempts + 1):
        code = generate(kind)
        if claim(code):
            return code
        record_collision(kind, code, attempt)
    raise IdentifierExhausted(kind, attempts)
