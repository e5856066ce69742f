"""Suggestions router — ranked "people you may know" and strategy diagnostics."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from linkgraph.config import get_settings
from linkgraph.dependencies import get_current_user_id, get_suggestion_engine
from linkgraph.models.suggestion import StrategyInfoRead, SuggestionRead
from linkgraph.services.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/suggestions", tags=["suggestions"])


def _resolve_limit(limit: int | None) -> int:
    """Missing or non-positive limits use the default; large ones are capped."""
    settings = get_settings()
    if limit is None or limit < 1:
        return settings.suggestion_default_limit
    return min(limit, settings.suggestion_max_limit)


@router.get("", response_model=list[SuggestionRead])
async def get_suggestions(
    limit: int | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    engine: SuggestionEngine = Depends(get_suggestion_engine),
) -> list[SuggestionRead]:
    """Combined ranking from every applicable strategy."""
    candidates = await engine.get_suggestions(user_id, _resolve_limit(limit))
    return [SuggestionRead.model_validate(c) for c in candidates]


@router.get("/strategies", response_model=list[StrategyInfoRead])
async def list_strategies(
    user_id: str = Depends(get_current_user_id),
    engine: SuggestionEngine = Depends(get_suggestion_engine),
) -> list[StrategyInfoRead]:
    """Registered strategies and whether each applies to the caller."""
    applicability = await engine.strategy_applicability(user_id)
    return [
        StrategyInfoRead(**info, applicable=applicability.get(info["name"], False))
        for info in engine.describe_strategies()
    ]


@router.get("/strategies/{strategy_name}", response_model=list[SuggestionRead])
async def get_suggestions_by_strategy(
    strategy_name: str,
    limit: int | None = Query(None),
    user_id: str = Depends(get_current_user_id),
    engine: SuggestionEngine = Depends(get_suggestion_engine),
) -> list[SuggestionRead]:
    """Suggestions from a single strategy, with raw (unweighted) scores."""
    candidates = await engine.get_suggestions_by_strategy(
        user_id, strategy_name, _resolve_limit(limit)
    )
    return [SuggestionRead.model_validate(c) for c in candidates]
