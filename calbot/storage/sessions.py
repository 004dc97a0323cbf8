import logging

from pydantic import ValidationError

from calbot.state import Session
from calbot.storage.kv import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Typed get/set of per-user sessions.

    load -> mutate -> save is not atomic. Two handlers running for the same
    user interleave freely and the later save wins; the dialog is a
    low-stakes draft, so no per-user lock is taken.
    """

    def __init__(self, kv: KeyValueStore, prefix: str = "session:"):
        self.kv = kv
        self.prefix = prefix

    def _key(self, user_id: int) -> str:
        return f"{self.prefix}{user_id}"

    async def load(self, user_id: int) -> Session:
        raw = await self.kv.get(self._key(user_id))
        if raw is None:
            logger.debug("No session for user %s, starting a fresh one", user_id)
            return Session()

        try:
            return Session.model_validate_json(raw)
        except ValidationError as e:
            logger.error("Corrupted session for user %s: %s", user_id, e)
            raise StoreError(f"Session for user {user_id} cannot be decoded") from e

    async def save(self, user_id: int, session: Session) -> None:
        try:
            raw = session.model_dump_json()
        except (TypeError, ValueError) as e:
            raise StoreError(f"Session for user {user_id} cannot be encoded") from e

        await self.kv.set(self._key(user_id), raw)
