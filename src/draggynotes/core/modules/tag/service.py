import json

import structlog
from pydantic import ValidationError as PydanticValidationError

from draggynotes.api.transformers import (
    transform_tag_response_to_tag,
    transform_tag_to_create_request,
    transform_tag_to_update_request,
)
from draggynotes.core.core import Service
from draggynotes.core.modules.note.models import Tag
from draggynotes.core.modules.tag.models import (
    MAX_TAG_SUGGESTIONS,
    PREDEFINED_TAGS,
    TAG_PATTERN,
    TOP_USER_TAGS,
    is_predefined,
)
from draggynotes.errors import ApiError, AuthenticationError, NotFoundError, ValidationError
from draggynotes.utils import now

logger = structlog.get_logger(__name__)


class TagService(Service):
    """Predefined and user tags, stored per user with API sync when signed in.

    The local list is the source for search and suggestions so tagging works
    offline; API calls are best effort and fall back to local changes.
    """

    @property
    def _tags_key(self) -> str:
        user_id = self.core.services.session.user_id
        return self.storage_key(f"note_tag_{user_id if user_id is not None else 'local'}")

    def get_all_tags(self) -> list[Tag]:
        return [*PREDEFINED_TAGS, *self.get_user_tags()]

    def get_user_tags(self) -> list[Tag]:
        raw = self.storage.get_item(self._tags_key)
        if not raw:
            return []
        try:
            return [Tag.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError, PydanticValidationError):
            logger.warning("tag_list_corrupted", key=self._tags_key, exc_info=True)
            return []

    def get_tag(self, tag_uuid: str) -> Tag:
        for tag in self.get_all_tags():
            if tag.uuid == tag_uuid:
                return tag
        raise NotFoundError(f"Tag '{tag_uuid}' not found")

    def find_tag_by_name(self, name: str) -> Tag | None:
        """Case-insensitive lookup among predefined and user tags."""
        wanted = name.strip().lower()
        return next((tag for tag in self.get_all_tags() if tag.name.lower() == wanted), None)

    def save_tag(self, tag: Tag) -> None:
        """Insert or replace a user tag (matched by uuid)."""
        if is_predefined(tag):
            return
        tags = self.get_user_tags()
        for i, existing in enumerate(tags):
            if existing.uuid == tag.uuid:
                tags[i] = tag
                break
        else:
            tags.append(tag)
        self._save_user_tags(tags)

    def create_local_tag(self, name: str) -> Tag:
        tag = Tag(name=_clean_name(name), user_id=self.core.services.session.user_id, usage_count=1)
        self.save_tag(tag)
        logger.debug("tag_created_locally", tag_uuid=tag.uuid, name=tag.name)
        return tag

    async def create_tag(self, name: str) -> Tag:
        """Create a tag on the server when signed in, locally otherwise.

        An existing tag with the same name (ignoring case) is returned as is.
        """
        existing = self.find_tag_by_name(_clean_name(name))
        if existing is not None:
            return existing

        if self.core.services.session.is_authenticated():
            draft = Tag(name=_clean_name(name), user_id=self.core.services.session.user_id, usage_count=1)
            try:
                response = await self.core.api.create_tag(transform_tag_to_create_request(draft))
            except (ApiError, AuthenticationError) as e:
                logger.warning("create_tag_api_failed", name=draft.name, error=str(e))
            else:
                tag = transform_tag_response_to_tag(response)
                self.save_tag(tag)
                return tag

        return self.create_local_tag(name)

    async def rename_tag(self, tag_uuid: str, name: str) -> Tag:
        tag = self.get_tag(tag_uuid)
        if is_predefined(tag):
            raise ValidationError("Predefined tags cannot be renamed")

        renamed = tag.model_copy(update={"name": _clean_name(name), "updated_at": now()})
        if self.core.services.session.is_authenticated() and renamed.id is not None and renamed.id > 0:
            try:
                response = await self.core.api.update_tag(renamed.id, transform_tag_to_update_request(renamed))
            except (ApiError, AuthenticationError) as e:
                logger.warning("rename_tag_api_failed", tag_uuid=tag_uuid, error=str(e))
            else:
                renamed = transform_tag_response_to_tag(response)

        self.save_tag(renamed)
        return renamed

    async def delete_tag(self, tag_uuid: str) -> None:
        tag = self.get_tag(tag_uuid)
        if is_predefined(tag):
            raise ValidationError("Predefined tags cannot be deleted")

        if self.core.services.session.is_authenticated() and tag.id is not None and tag.id > 0:
            try:
                await self.core.api.delete_tag(tag.id)
            except (ApiError, AuthenticationError) as e:
                logger.warning("delete_tag_api_failed", tag_uuid=tag_uuid, error=str(e))

        self._save_user_tags([t for t in self.get_user_tags() if t.uuid != tag_uuid])
        logger.debug("tag_deleted", tag_uuid=tag_uuid)

    def increment_tag_usage(self, tag_uuid: str) -> None:
        """Bump the usage counter of a user tag. Predefined tags are not tracked."""
        tags = self.get_user_tags()
        for i, tag in enumerate(tags):
            if tag.uuid == tag_uuid:
                tags[i] = tag.model_copy(update={"usage_count": tag.usage_count + 1})
                self._save_user_tags(tags)
                return

    def search_tags(self, query: str) -> list[Tag]:
        needle = query.lower()
        return [tag for tag in self.get_all_tags() if needle in tag.name.lower()]

    def get_tag_suggestions(self, query: str = "") -> list[Tag]:
        """Autocomplete: predefined + most used user tags for an empty query, else matches."""
        if not query.strip():
            most_used = sorted(self.get_user_tags(), key=lambda t: t.usage_count, reverse=True)[:TOP_USER_TAGS]
            return [*PREDEFINED_TAGS, *most_used]
        return self.search_tags(query.strip())[:MAX_TAG_SUGGESTIONS]

    async def get_top_tags(self) -> list[Tag]:
        if self.core.services.session.is_authenticated():
            try:
                return [transform_tag_response_to_tag(t) for t in await self.core.api.get_top_tags()]
            except (ApiError, AuthenticationError) as e:
                logger.warning("get_top_tags_api_failed", error=str(e))
        return self.get_tag_suggestions("")

    def extract_tags_from_text(self, text: str) -> list[Tag]:
        """Known tags referenced as `#name` in text, without duplicates."""
        found: list[Tag] = []
        for name in _tag_names(text):
            tag = self.find_tag_by_name(name)
            if tag is not None and all(t.uuid != tag.uuid for t in found):
                found.append(tag)
        return found

    def find_or_create_tags_from_text(self, text: str) -> list[Tag]:
        """Like extract_tags_from_text, creating local tags for unknown names."""
        found: list[Tag] = []
        for name in _tag_names(text):
            tag = self.find_tag_by_name(name) or self.create_local_tag(name)
            if all(t.uuid != tag.uuid for t in found):
                found.append(tag)
        return found

    @staticmethod
    def remove_tags_from_text(text: str) -> str:
        return " ".join(TAG_PATTERN.sub("", text).split())

    async def sync_tags(self) -> int:
        """Pull user tags from the API, keeping local-only ones. Returns the count pulled.

        Failures are logged and leave local tags untouched.
        """
        if not self.core.services.session.is_authenticated():
            return 0
        try:
            responses = await self.core.api.get_all_tags()
        except (ApiError, AuthenticationError) as e:
            logger.warning("sync_tags_failed", error=str(e))
            return 0

        remote = [transform_tag_response_to_tag(r) for r in responses if not r.is_predefined and r.id > 0]
        remote_uuids = {tag.uuid for tag in remote}
        local_only = [t for t in self.get_user_tags() if t.uuid not in remote_uuids and not t.id]
        self._save_user_tags(remote + local_only)
        logger.info("tags_synced", remote=len(remote), local_only=len(local_only))
        return len(remote)

    def _save_user_tags(self, tags: list[Tag]) -> None:
        self.storage.set_item(self._tags_key, json.dumps([t.model_dump(mode="json", by_alias=True) for t in tags]))


def _clean_name(name: str) -> str:
    cleaned = name.strip().lstrip("#").strip()
    if not cleaned:
        raise ValidationError("Tag name must not be empty")
    return cleaned


def _tag_names(text: str) -> list[str]:
    return [match.group(1).strip() for match in TAG_PATTERN.finditer(text)]
