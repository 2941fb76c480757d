"""Slug and timestamp helpers shared by node creation and rename."""

import re
from datetime import datetime, timezone

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """
    Build a URL slug from a display name.

    Lower-cases the name, collapses every run of non-alphanumeric
    characters into a single dash and trims leading/trailing dashes.
    Slugs are not unique: the same name in two namespaces gives the
    same slug.
    """
    return _NON_ALNUM.sub("-", (name or "").lower()).strip("-")


def utc_now() -> str:
    """Return current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()
