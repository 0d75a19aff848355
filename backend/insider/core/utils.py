"""
Small helpers shared by models and services
"""
import re
import secrets
import string
from datetime import datetime, timezone

_SLUG_ALPHABET = string.ascii_lowercase + string.digits


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify(value: str, max_length: int = 50) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', value.lower()).strip('-')
    return slug[:max_length].strip('-')


def random_suffix(length: int = 6) -> str:
    return ''.join(secrets.choice(_SLUG_ALPHABET) for _ in range(length))


def unique_slug(value: str) -> str:
    """Slugified title plus a random suffix, e.g. ``code-review-helper-x7k2pq``"""
    base = slugify(value) or "item"
    return f"{base}-{random_suffix()}"
