"""Text sanitization for user-supplied content sent to the issue tracker.

Chat text ends up in issue titles, bodies and labels. Markup that could
execute in a rendered page is stripped; markdown is kept.
"""

import re

MAX_BODY_LENGTH = 10000
MAX_TITLE_LENGTH = 256
MAX_LABEL_LENGTH = 50

_DANGEROUS_PATTERNS = [
    re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL),
    re.compile(r"""\s*on\w+\s*=\s*["'][^"']*["']""", re.IGNORECASE),
    re.compile(r"\s*on\w+\s*=\s*[^\s>]*", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"<(object|embed|applet)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<iframe[^>]*>.*?</iframe>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL),
    re.compile(r"<(meta|link|base)[^>]*>", re.IGNORECASE),
]
_ALLOWED_TAGS = r"a|b|i|em|strong|code|pre|blockquote|ul|ol|li|h[1-6]"
_DISALLOWED_TAG = re.compile(rf"<(?!/?(?:{_ALLOWED_TAGS})\b)[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"<[^>]*>")


def remove_dangerous_patterns(text: str) -> str:
    for pattern in _DANGEROUS_PATTERNS:
        text = pattern.sub("", text)
    return text


def sanitize_body(text: str | None, max_length: int = MAX_BODY_LENGTH) -> str:
    """Clean an issue body, keeping markdown and a few harmless tags."""
    if not text:
        return ""
    cleaned = _DISALLOWED_TAG.sub("", remove_dangerous_patterns(text))
    return cleaned[:max_length].strip()


def sanitize_title(text: str | None) -> str:
    """Clean an issue title: plain text on a single line.

    Example:
        >>> sanitize_title("My <script>evil()</script> <b>title</b>")
        'My  title'
    """
    if not text:
        return ""
    cleaned = _ANY_TAG.sub("", remove_dangerous_patterns(text))
    cleaned = re.sub(r"[\r\n]+", " ", cleaned)
    return cleaned[:MAX_TITLE_LENGTH].strip()


def sanitize_label(text: str | None) -> str:
    """Reduce a label to lower-case letters, digits, hyphens and underscores."""
    if not text:
        return ""
    cleaned = _ANY_TAG.sub("", remove_dangerous_patterns(text)).lower()
    cleaned = re.sub(r"[^a-z0-9_-]", "-", cleaned)
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned[:MAX_LABEL_LENGTH]
