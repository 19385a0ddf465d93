from __future__ import annotations

import re
import unicodedata

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"
MIN_SLUG_LENGTH = 3
MAX_SLUG_LENGTH = 50

_NON_WORD = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_SLUG = re.compile(SLUG_PATTERN)


def generate_slug(text: str) -> str:
    """Derive a URL-safe slug from a display name.

    "Clínica São José" -> "clinica-sao-jose"

    Long names are cut to ``MAX_SLUG_LENGTH`` characters. The result may still
    be shorter than ``MIN_SLUG_LENGTH``; check it with :func:`is_valid_slug`.
    """

    decomposed = unicodedata.normalize("NFD", text.lower())
    without_accents = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = _NON_WORD.sub("", without_accents)
    slug = _WHITESPACE.sub("-", slug.strip())
    slug = _HYPHENS.sub("-", slug)
    return slug.strip("-")[:MAX_SLUG_LENGTH].rstrip("-")


def is_valid_slug(slug: str) -> bool:
    """True when ``slug`` can be used in ``/{workspace_slug}/...`` URLs."""

    return MIN_SLUG_LENGTH <= len(slug) <= MAX_SLUG_LENGTH and _SLUG.match(slug) is not None
