"""Slug and identifier generation for documents and blocks"""

import re


def slugify(text: str) -> str:
    """Convert text to a lowercase, hyphen-separated URL-safe slug."""
    text = text.lower()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[\s_]+', '-', text)
    return re.sub(r'-+', '-', text).strip('-')


def dashed(text: str) -> str:
    """Replace every non-alphanumeric character with a dash (case preserved)."""
    return re.sub(r'[^a-zA-Z0-9]', '-', text)
