"""
Heading anchors, computed the way GitHub renders markdown.

Example:
    >>> slugify("14. Common Table Expressions (CTE)")
    '14-common-table-expressions-cte'
"""

import re

_INLINE_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_DROPPED_CHARS = re.compile(r"[^\w\- ]", re.UNICODE)


def slugify(text: str) -> str:
    """Turn heading text into its anchor (without duplicate suffix)."""
    text = _INLINE_LINK.sub(r"\1", text.strip())
    text = _DROPPED_CHARS.sub("", text.lower())
    return text.replace(" ", "-")


class AnchorRegistry:
    """Assigns unique anchors to headings in document order.

    Repeated slugs get ``-1``, ``-2``... suffixes, as on GitHub.
    """

    def __init__(self):
        self._seen: dict[str, int] = {}

    def anchor_for(self, text: str) -> str:
        slug = slugify(text)
        count = self._seen.get(slug)
        if count is None:
            self._seen[slug] = 0
            return slug
        count += 1
        self._seen[slug] = count
        return f"{slug}-{count}"
