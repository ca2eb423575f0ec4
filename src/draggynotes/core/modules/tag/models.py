import re

from draggynotes.core.modules.note.models import Tag

# Shared by every user, never stored per user and never modified
PREDEFINED_TAGS: tuple[Tag, ...] = (
    Tag(id=-1, uuid="predefined-work", name="Work", is_predefined=True),
    Tag(id=-2, uuid="predefined-personal", name="Personal", is_predefined=True),
    Tag(id=-3, uuid="predefined-urgent", name="Urgent", is_predefined=True),
)

# `#name` or `#multi word name` inside note text
TAG_PATTERN = re.compile(r"#(\w+(?:\s+\w+)*)")

MAX_TAG_SUGGESTIONS = 10
TOP_USER_TAGS = 2


def is_predefined(tag: Tag) -> bool:
    return tag.is_predefined or any(tag.uuid == p.uuid for p in PREDEFINED_TAGS)
