"""Suggestion engine — combine weighted strategy outputs into one ranking."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from linkgraph.errors import ProfileServiceError, StrategyNotFoundError
from linkgraph.models.suggestion import SuggestionCandidate
from linkgraph.services.profiles import ProfileService
from linkgraph.services.strategies import SuggestionStrategy

logger = logging.getLogger(__name__)

# Strategies are asked for this many times the requested count so that
# overlap between strategies still leaves enough distinct candidates.
OVERFETCH_FACTOR = 2


def combine_reasons(first: str, second: str) -> str:
    """Join two reasons into one sentence: "A and b..."."""
    if not first:
        return second
    if not second:
        return first
    return f"{first} and {second[0].lower()}{second[1:]}"


class SuggestionEngine:
    """Runs every applicable strategy and merges the results.

    Scores from different strategies add up (after weighting) and are
    capped at 1.0. Ties are broken by user id so rankings are stable.
    A strategy that raises or exceeds ``strategy_timeout`` is logged and
    skipped; the engine always returns what the others produced.

    Ranked candidates that no strategy described are looked up in the
    profile store; if it is down they are returned with ids only.
    """

    def __init__(
        self,
        strategies: Sequence[SuggestionStrategy],
        strategy_timeout: float = 3.0,
        profile_service: ProfileService | None = None,
    ) -> None:
        self.strategies = list(strategies)
        self.strategy_timeout = strategy_timeout
        self.profile_service = profile_service

    @property
    def strategy_count(self) -> int:
        return len(self.strategies)

    async def get_suggestions(self, user_id: str, limit: int) -> list[SuggestionCandidate]:
        logger.info("Generating suggestions for user %s (limit %d)", user_id, limit)
        if limit <= 0:
            return []

        results = await asyncio.gather(
            *(self._run_strategy(s, user_id, limit * OVERFETCH_FACTOR) for s in self.strategies)
        )

        # Merge in registration order, independent of completion order
        combined: dict[str, SuggestionCandidate] = {}
        for strategy, candidates in zip(self.strategies, results):
            for candidate in candidates:
                self._combine(combined, candidate, strategy)

        ranked = sorted(combined.values(), key=lambda c: (-c.score, c.user_id))[:limit]
        await self._attach_profiles(ranked)
        logger.info(
            "Generated %d suggestions for user %s from %d strategies",
            len(ranked), user_id, len(self.strategies),
        )
        return ranked

    async def _run_strategy(
        self, strategy: SuggestionStrategy, user_id: str, limit: int
    ) -> list[SuggestionCandidate]:
        """Applicability check + generation under one timeout; failures yield []."""

        async def _run() -> list[SuggestionCandidate]:
            if not await strategy.is_applicable(user_id):
                logger.debug("Strategy '%s' not applicable for user %s", strategy.name, user_id)
                return []
            return await strategy.generate_suggestions(user_id, limit)

        try:
            candidates = await asyncio.wait_for(_run(), timeout=self.strategy_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Strategy '%s' timed out after %.1fs for user %s",
                strategy.name, self.strategy_timeout, user_id,
            )
            return []
        except Exception:
            logger.exception("Strategy '%s' failed for user %s", strategy.name, user_id)
            return []

        logger.debug("Strategy '%s' produced %d candidates", strategy.name, len(candidates))
        return candidates

    @staticmethod
    def _combine(
        combined: dict[str, SuggestionCandidate],
        candidate: SuggestionCandidate,
        strategy: SuggestionStrategy,
    ) -> None:
        weighted = candidate.score * strategy.weight
        existing = combined.get(candidate.user_id)
        if existing is None:
            combined[candidate.user_id] = SuggestionCandidate(
                user_id=candidate.user_id,
                score=weighted,
                reason=candidate.reason,
                strategies=[strategy.name],
                mutual_connections=candidate.mutual_connections,
            )
            combined[candidate.user_id].copy_profile_from(candidate)
            return

        existing.score = min(1.0, existing.score + weighted)
        existing.reason = combine_reasons(existing.reason, candidate.reason)
        existing.strategies.append(strategy.name)
        existing.mutual_connections = max(existing.mutual_connections, candidate.mutual_connections)
        existing.copy_profile_from(candidate)

    async def _attach_profiles(self, candidates: list[SuggestionCandidate]) -> None:
        if self.profile_service is None:
            return
        missing = [c for c in candidates if not c.has_profile]
        if missing:
            await asyncio.gather(*(self._attach_profile(c) for c in missing))

    async def _attach_profile(self, candidate: SuggestionCandidate) -> None:
        try:
            profile = await asyncio.wait_for(
                self.profile_service.get_profile(candidate.user_id),
                timeout=self.strategy_timeout,
            )
        except (ProfileServiceError, asyncio.TimeoutError):
            logger.warning(
                "Profile lookup failed for suggested user %s; returning id only",
                candidate.user_id,
            )
            return
        if profile is not None:
            candidate.apply_profile(profile)

    # --- Diagnostics ---

    def find_strategy(self, name: str) -> SuggestionStrategy:
        for strategy in self.strategies:
            if strategy.name.lower() == name.strip().lower():
                return strategy
        logger.warning("Strategy '%s' not found", name)
        raise StrategyNotFoundError(name)

    async def get_suggestions_by_strategy(
        self, user_id: str, strategy_name: str, limit: int
    ) -> list[SuggestionCandidate]:
        """Run one strategy in isolation; scores are raw (unweighted)."""
        strategy = self.find_strategy(strategy_name)
        if not await strategy.is_applicable(user_id):
            logger.debug("Strategy '%s' not applicable for user %s", strategy.name, user_id)
            return []
        candidates = await strategy.generate_suggestions(user_id, limit)
        ranked = sorted(candidates, key=lambda c: (-c.score, c.user_id))[:limit]
        await self._attach_profiles(ranked)
        return ranked

    def describe_strategies(self) -> list[dict]:
        return [
            {"name": s.name, "weight": s.weight, "description": s.description}
            for s in self.strategies
        ]

    async def strategy_applicability(self, user_id: str) -> dict[str, bool]:
        applicability: dict[str, bool] = {}
        for strategy in self.strategies:
            try:
                applicability[strategy.name] = await asyncio.wait_for(
                    strategy.is_applicable(user_id), timeout=self.strategy_timeout
                )
            except Exception:
                logger.warning(
                    "Applicability check for '%s' failed for user %s",
                    strategy.name, user_id, exc_info=True,
                )
                applicability[strategy.name] = False
        return applicability
