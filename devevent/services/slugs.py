import logging
from typing import Callable, Optional

from devevent.errors import EmptySlugBaseError

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 200
# Leaves room for a "-<counter>" suffix within MAX_SLUG_LENGTH
MAX_BASE_LENGTH = 180

SlugExists = Callable[[str, Optional[str]], bool]


def allocate_slug(
    base: str, exists: SlugExists, exclude_id: Optional[str] = None
) -> str:
    """
    Derive a slug not held by any other event.

    Tries ``base`` first, then ``base-1``, ``base-2``, ... until ``exists``
    reports no collision. ``exclude_id`` names an event whose own claim on a
    candidate does not count as a collision (used when re-slugging).
    """
    base = base[:MAX_BASE_LENGTH].strip("-")
    if not base:
        raise EmptySlugBaseError(base)

    candidate = base
    counter = 0
    while exists(candidate, exclude_id):
        counter += 1
        candidate = f"{base}-{counter}"

    if counter:
        logger.info("Slug %r taken, allocated %r", base, candidate)
    return candidate
