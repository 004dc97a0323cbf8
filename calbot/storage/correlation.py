import logging
from typing import Optional

from calbot.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)


class CorrelationStore:
    """
    Maps an event uid (carried in inline buttons) to its calendar id.

    Entries may vanish at any time; a miss is an ordinary answer.
    Rewriting an entry is harmless since a uid always maps to the same calendar.
    """

    def __init__(self, kv: KeyValueStore, prefix: str = "event:"):
        self.kv = kv
        self.prefix = prefix

    async def remember(self, event_uid: str, calendar_uid: str) -> None:
        await self.kv.set(self.prefix + event_uid, calendar_uid)

    async def lookup(self, event_uid: str) -> Optional[str]:
        calendar_uid = await self.kv.get(self.prefix + event_uid)
        if calendar_uid is None:
            logger.info("No calendar recorded for event %s", event_uid)
        return calendar_uid
