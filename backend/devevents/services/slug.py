"""Slug derivation for events.

A slug is the URL-safe form of the title plus a short random suffix so two
events with the same title never collide.
"""
import re
import secrets
from typing import Callable, Container

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
MAX_BASE_LENGTH = 80


def slugify(title: str) -> str:
    """Lower-case, strip punctuation, hyphenate whitespace."""
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug, flags=re.ASCII)
    slug = slug.replace("_", "-")
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:MAX_BASE_LENGTH].strip("-") or "event"


def derive_slug(
    title: str,
    existing_slugs: Container[str],
    suffix_factory: Callable[[], str] = lambda: secrets.token_hex(3),
) -> str:
    """Return a slug for ``title`` that is not in ``existing_slugs``."""
    base = slugify(title)
    while True:
        candidate = f"{base}-{suffix_factory()}"
        if candidate not in existing_slugs:
            return candidate


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and SLUG_PATTERN.match(slug) is not None
