import re

_NON_SLUG_RUN_RE = re.compile(r"[^a-z0-9]+")


def slugify(text: str | None) -> str:
    """Lower-case ``text`` and collapse every run outside ``[a-z0-9]`` into one hyphen.

    Returns an empty string when nothing alphanumeric survives; callers treat
    that as a missing required field.
    """
    if not text:
        return ""
    return _NON_SLUG_RUN_RE.sub("-", text.lower()).strip("-")
