"""Keyword knowledge base of the manager bot."""

from ..models import KnowledgeEntry
from ..storage import IStorage

MIN_TOKEN_LENGTH = 3


def tokenize(query: str) -> list[str]:
    """Lowercased whitespace tokens longer than two characters."""
    return [word for word in query.lower().split() if len(word) >= MIN_TOKEN_LENGTH]


def score(entry: KnowledgeEntry, tokens: list[str]) -> int:
    """Number of tokens contained in the entry keyword."""
    return sum(1 for token in tokens if token in entry.keyword)


def best_match(entries: list[KnowledgeEntry], tokens: list[str]) -> KnowledgeEntry | None:
    """Highest scoring entry with score > 0.

    Ties go to the most recently updated entry, then to the higher id.
    """
    best = None
    best_key = None
    for entry in entries:
        entry_score = score(entry, tokens)
        if entry_score <= 0:
            continue
        key = (entry_score, entry.updated_at, entry.id or 0)
        if best_key is None or key > best_key:
            best, best_key = entry, key
    return best


class KnowledgeBase:
    """keyword -> response pairs taught through /learn."""

    def __init__(self, storage: IStorage, bot_id: str):
        self._storage = storage
        self._bot_id = bot_id

    @staticmethod
    def normalize(keyword: str) -> str:
        return keyword.strip().lower()

    async def learn(self, keyword: str, response: str, user_id: int | None) -> str:
        keyword = self.normalize(keyword)
        await self._storage.upsert_knowledge(self._bot_id, keyword, response, user_id)
        return keyword

    async def forget(self, keyword: str) -> bool:
        return await self._storage.delete_knowledge(self._bot_id, self.normalize(keyword))

    async def entries(self, limit: int = 20) -> list[KnowledgeEntry]:
        return await self._storage.list_knowledge(self._bot_id, limit)

    async def search(self, query: str) -> KnowledgeEntry | None:
        tokens = tokenize(query)
        if not tokens:
            return None
        candidates = await self._storage.find_knowledge(self._bot_id, tokens)
        return best_match(candidates, tokens)
