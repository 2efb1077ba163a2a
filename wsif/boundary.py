"""WSIF boundary tokens for inline page bodies."""

from __future__ import annotations

import logging
import random

from wsif.spec import BOUNDARY_CHARSET, BOUNDARY_LENGTH

logger = logging.getLogger(__name__)


def random_token(length: int = BOUNDARY_LENGTH, rng: random.Random | None = None) -> str:
    """Random alphanumeric token. Not cryptographic, only needs to be unlikely."""
    rng = rng or random
    return "".join(rng.choice(BOUNDARY_CHARSET) for _ in range(length))


def is_valid(token: str) -> bool:
    """True for a non-empty token made only of BOUNDARY_CHARSET characters."""
    return bool(token) and all(ch in BOUNDARY_CHARSET for ch in token)


def generate(preferred: str, content: bytes, rng: random.Random | None = None) -> str:
    """Return a boundary that does not occur anywhere in content.

    The preferred token is kept when it is valid and absent from the
    content, so consecutive pages tend to share one boundary. A preferred
    token outside BOUNDARY_CHARSET is replaced by a random one.
    """
    token = preferred
    if token and not is_valid(token):
        logger.warning("Ignoring invalid boundary %r", token)
        token = ""
    token = token or random_token(rng=rng)
    while token.encode("ascii") in content:
        token = random_token(rng=rng)
    return token
