from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel

from linkgraph.models.profile import UserProfile


@dataclass(slots=True)
class SuggestionCandidate:
    """A suggested user with a score in [0, 1] and a human-readable reason.

    Mutable: the suggestion engine accumulates scores from several
    strategies into a single candidate per user. Profile fields stay None
    when the profile store could not describe the user.
    """
    user_id: str
    score: float
    reason: str
    strategies: list[str] = field(default_factory=list)
    mutual_connections: int = 0
    name: str | None = None
    headline: str | None = None
    location: str | None = None
    profile_picture_url: str | None = None

    @property
    def has_profile(self) -> bool:
        return self.name is not None

    def apply_profile(self, profile: UserProfile) -> None:
        self.name = profile.name
        self.headline = profile.headline
        self.location = profile.location
        self.profile_picture_url = profile.profile_picture_url

    def copy_profile_from(self, other: SuggestionCandidate) -> None:
        if self.has_profile or not other.has_profile:
            return
        self.name = other.name
        self.headline = other.headline
        self.location = other.location
        self.profile_picture_url = other.profile_picture_url


class SuggestionRead(BaseModel):
    user_id: str
    score: float
    reason: str
    strategies: list[str]
    mutual_connections: int
    name: str | None = None
    headline: str | None = None
    location: str | None = None
    profile_picture_url: str | None = None

    model_config = {"from_attributes": True}


class StrategyInfoRead(BaseModel):
    name: str
    weight: float
    description: str
    applicable: bool
