import structlog
from pydantic import ValidationError as PydanticValidationError

from draggynotes.core.core import Service
from draggynotes.core.events import EventType
from draggynotes.core.modules.session.models import AuthToken, Session
from draggynotes.core.storage import KeyValueStorage
from draggynotes.errors import ValidationError
from draggynotes.utils import now

logger = structlog.get_logger(__name__)


class SessionService(Service):
    """Service for the local user session: token, user id, login/logout signals."""

    def __init__(self, storage: KeyValueStorage) -> None:
        super().__init__(storage)
        self._session = Session()

    @property
    def _session_key(self) -> str:
        return self.storage_key("session")

    async def on_start(self) -> None:
        """Restore the persisted session; fall back to a token from config."""
        raw = self.storage.get_item(self._session_key)
        if raw:
            try:
                self._session = Session.model_validate_json(raw)
            except PydanticValidationError:
                logger.warning("session_record_corrupted")
                self._session = Session()
        token = self.core.config.auth_token
        if token and not self._session.auth_token:
            self._session = self._session.model_copy(
                update={"auth_token": token, "logged_in_at": now(), "ever_logged_in": True}
            )
            self._persist()
        logger.debug("session_restored", is_authenticated=self.is_authenticated(), user_id=self.user_id)

    async def login(self, token: str, user_id: int | None = None) -> None:
        if not token.strip():
            raise ValidationError("Auth token must not be empty")
        self._session = Session(
            auth_token=AuthToken(token.strip()), user_id=user_id, logged_in_at=now(), ever_logged_in=True
        )
        self._persist()
        logger.info("user_logged_in", user_id=user_id)
        await self.core.bus.emit(EventType.AUTH_CHANGED, {"is_authenticated": True, "user_id": user_id})

    async def logout(self) -> None:
        """Forget the token. Local data stays usable offline."""
        was_authenticated = self.is_authenticated()
        self._session = Session(ever_logged_in=self._session.ever_logged_in)
        self._persist()
        if was_authenticated:
            logger.info("user_logged_out")
            await self.core.bus.emit(EventType.AUTH_CHANGED, {"is_authenticated": False, "user_id": None})

    def is_authenticated(self) -> bool:
        return bool(self._session.auth_token)

    def get_token(self) -> str | None:
        return self._session.auth_token

    @property
    def user_id(self) -> int | None:
        return self._session.user_id

    def has_ever_logged_in(self) -> bool:
        return self._session.ever_logged_in

    def _persist(self) -> None:
        self.storage.set_item(self._session_key, self._session.model_dump_json())
