import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class FunFact:
    content: str
    score: float


def score_message(message: dict, now: datetime) -> float:
    """
    More reactions and more recent messages score higher.
    """
    reactions = 1 + sum(r.get("count", 0) for r in message.get("reactions") or [])
    created = datetime.fromisoformat(message["timestamp"])
    days = max(1, math.ceil((now - created).total_seconds() / SECONDS_PER_DAY))
    return reactions / days


class FunFacts:
    def __init__(self, rng: Optional[random.Random] = None):
        self.facts: list[FunFact] = []
        self._rng = rng or random.Random()

    async def load(self, discord, channel_id: str, now: datetime) -> None:
        if not channel_id:
            return
        logger.info("Loading fun facts from channel %s", channel_id)
        try:
            messages = await discord.fetch_messages(channel_id, limit=100)
        except Exception:
            logger.exception("Failed to load fun facts, keeping %d previous", len(self.facts))
            return
        self.facts = [
            FunFact(content=m["content"], score=score_message(m, now))
            for m in messages
            if m.get("type", 0) == 0 and m.get("content")
        ]
        logger.info("%d fun facts loaded", len(self.facts))

    def pick(self) -> Optional[str]:
        """Random fact, weighted by score."""
        if not self.facts:
            return None
        return self._rng.choices(self.facts, weights=[f.score for f in self.facts], k=1)[0].content
