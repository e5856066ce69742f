"""Suggestion strategies — independent scorers for "people you may know".

Each strategy looks at one signal and returns candidates with a raw score in
[0, 1] and a reason. Strategies never read each other's output; weighting
and merging happen in SuggestionEngine.

Graph reads are blocking SQL, so they run in a worker thread with their own
session. That keeps the event loop free and lets the engine's per-strategy
timeout fire while a slow query is still running.
"""
from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Callable
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import Session

from linkgraph.models.profile import UserProfile
from linkgraph.models.suggestion import SuggestionCandidate
from linkgraph.services.connections import (
    accepted_peer_ids,
    count_accepted,
    related_user_ids,
)
from linkgraph.services.profiles import ProfileService

logger = logging.getLogger(__name__)


async def read_graph(engine: Engine, query: Callable[..., Any], *args: Any) -> Any:
    """Run ``query(session, *args)`` in a worker thread with a fresh session."""

    def _run() -> Any:
        with Session(engine) as session:
            return query(session, *args)

    return await asyncio.to_thread(_run)


def count_mutuals(session: Session, user_id: str) -> Counter[str]:
    """Second-degree users not yet related to ``user_id``, with mutual counts."""
    first_degree = accepted_peer_ids(session, user_id)
    if not first_degree:
        return Counter()

    # Anyone with an existing record (pending, rejected, blocked...) is excluded
    excluded = related_user_ids(session, user_id) | {user_id}
    mutual_counts: Counter[str] = Counter()
    for peer in first_degree:
        for second_degree in accepted_peer_ids(session, peer):
            if second_degree not in excluded:
                mutual_counts[second_degree] += 1
    logger.debug(
        "%d second-degree candidates for user %s from %d connections",
        len(mutual_counts), user_id, len(first_degree),
    )
    return mutual_counts


class SuggestionStrategy(ABC):
    """One scoring signal. ``weight`` scales its scores when combined."""

    name: str = ""
    description: str = ""

    def __init__(self, weight: float) -> None:
        self.weight = weight

    @abstractmethod
    async def is_applicable(self, user_id: str) -> bool: ...

    @abstractmethod
    async def generate_suggestions(self, user_id: str, limit: int) -> list[SuggestionCandidate]: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(weight={self.weight})"


class MutualConnectionStrategy(SuggestionStrategy):
    """Friends of friends, ranked by how many connections they share with the user."""

    name = "Mutual Connections"
    description = (
        "Suggests users who are connected to your connections. "
        "The more mutual connections, the stronger the suggestion."
    )

    # Score reaches 1.0 at this many mutual connections
    SATURATION = 10

    def __init__(self, engine: Engine, weight: float = 1.0) -> None:
        super().__init__(weight)
        self.engine = engine

    async def is_applicable(self, user_id: str) -> bool:
        return await read_graph(self.engine, count_accepted, user_id) > 0

    async def generate_suggestions(self, user_id: str, limit: int) -> list[SuggestionCandidate]:
        mutual_counts = await read_graph(self.engine, count_mutuals, user_id)
        ranked = sorted(mutual_counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            SuggestionCandidate(
                user_id=candidate,
                score=self.score(count),
                reason=self.reason(count),
                strategies=[self.name],
                mutual_connections=count,
            )
            for candidate, count in ranked
        ]

    @classmethod
    def score(cls, mutual_count: int) -> float:
        """Log-scaled: 1 mutual ~0.29, 5 ~0.75, 10+ -> 1.0."""
        return min(1.0, math.log10(mutual_count + 1) / math.log10(cls.SATURATION + 1))

    @staticmethod
    def reason(mutual_count: int) -> str:
        if mutual_count == 1:
            return "You have 1 mutual connection"
        if mutual_count <= 5:
            return f"You have {mutual_count} mutual connections"
        if mutual_count <= 10:
            return f"You have {mutual_count} mutual connections - well connected!"
        return f"You have {mutual_count} mutual connections - very well connected!"


def skill_overlap(a: UserProfile, b: UserProfile) -> float:
    """Jaccard similarity of two users' skill sets (0.0 when either is empty)."""
    skills_a, skills_b = a.skill_set(), b.skill_set()
    if not skills_a or not skills_b:
        return 0.0
    return len(skills_a & skills_b) / len(skills_a | skills_b)


class _AttributeMatchStrategy(SuggestionStrategy):
    """Users sharing one profile attribute, boosted by overlapping skills.

    score = base_score + (1 - base_score) * skill_overlap

    The caller's profile is fetched once per strategy instance; instances
    are built per request.
    """

    attribute: str = ""
    base_score: float = 0.5

    def __init__(
        self,
        engine: Engine,
        profile_service: ProfileService,
        weight: float,
    ) -> None:
        super().__init__(weight)
        self.engine = engine
        self.profile_service = profile_service
        self._profiles: dict[str, UserProfile | None] = {}

    async def _profile(self, user_id: str) -> UserProfile | None:
        if user_id not in self._profiles:
            self._profiles[user_id] = await self.profile_service.get_profile(user_id)
        return self._profiles[user_id]

    def _value(self, profile: UserProfile | None) -> str | None:
        if profile is None:
            return None
        value = getattr(profile, self.attribute)
        return value.strip() if value and value.strip() else None

    async def is_applicable(self, user_id: str) -> bool:
        return self._value(await self._profile(user_id)) is not None

    async def generate_suggestions(self, user_id: str, limit: int) -> list[SuggestionCandidate]:
        profile = await self._profile(user_id)
        value = self._value(profile)
        if value is None:
            return []

        excluded = await read_graph(self.engine, related_user_ids, user_id) | {user_id}
        matches = await self.profile_service.search_users(
            limit=limit + len(excluded), **{self.attribute: value}
        )

        candidates = []
        for other in matches:
            if other.id in excluded or not other.active:
                continue
            if (self._value(other) or "").lower() != value.lower():
                continue
            score = self.base_score + (1.0 - self.base_score) * skill_overlap(profile, other)
            candidate = SuggestionCandidate(
                user_id=other.id,
                score=round(score, 6),
                reason=self.reason(value),
                strategies=[self.name],
            )
            candidate.apply_profile(other)
            candidates.append(candidate)
        candidates.sort(key=lambda c: (-c.score, c.user_id))
        return candidates[:limit]

    @abstractmethod
    def reason(self, value: str) -> str: ...


class SameIndustryStrategy(_AttributeMatchStrategy):
    name = "Same Industry"
    description = (
        "Suggests users who work in the same industry. "
        "Shared skills make the suggestion stronger."
    )
    attribute = "industry"
    base_score = 0.6

    def __init__(self, engine: Engine, profile_service: ProfileService, weight: float = 0.6) -> None:
        super().__init__(engine, profile_service, weight)

    def reason(self, value: str) -> str:
        return f"Works in the {value} industry"


class SameLocationStrategy(_AttributeMatchStrategy):
    name = "Same Location"
    description = "Suggests users based in the same location as you."
    attribute = "location"
    base_score = 0.7

    def __init__(self, engine: Engine, profile_service: ProfileService, weight: float = 0.4) -> None:
        super().__init__(engine, profile_service, weight)

    def reason(self, value: str) -> str:
        return f"Is based in {value}"
