PUBLISHED = "published"
DRAFT = "draft"


def just_published(previous_status: str | None, requested_status: str | None) -> bool:
    """True only for the move into ``published``; ``previous_status`` is None for a new item."""
    return requested_status == PUBLISHED and previous_status != PUBLISHED
