"""Plain-text helpers for course card descriptions.

Course descriptions are authored in a rich-text editor and stored as HTML.
Cards show a short plain-text excerpt.
"""

from bs4 import BeautifulSoup


DEFAULT_DESCRIPTION = "Sin descripción disponible"
DEFAULT_EXCERPT_LENGTH = 100


def strip_html(value: str) -> str:
    """Extract the text of an HTML fragment, whitespace collapsed."""
    soup = BeautifulSoup(value, "html.parser")
    # Text nodes of separate elements are joined with a space
    return " ".join(soup.get_text(" ", strip=True).split())


def clean_description(
    value: str | None, max_length: int = DEFAULT_EXCERPT_LENGTH
) -> str:
    """Build a plain-text excerpt of an HTML description.

    Args:
        value: HTML description (may be None)
        max_length: Maximum characters kept before the ellipsis

    Returns:
        Excerpt ending in "..." when truncated, or the default text when
        nothing readable remains
    """
    if not value:
        return DEFAULT_DESCRIPTION

    text = strip_html(value)
    if len(text) > max_length:
        text = text[:max_length].strip() + "..."

    return text or DEFAULT_DESCRIPTION
