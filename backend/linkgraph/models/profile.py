"""User profile as reported by the external profile store."""
from __future__ import annotations

from pydantic import BaseModel, Field


class UserProfile(BaseModel):
    id: str
    name: str = ""
    headline: str | None = None
    industry: str | None = None
    location: str | None = None
    profile_picture_url: str | None = None
    skills: list[str] = Field(default_factory=list)
    active: bool = True

    model_config = {"extra": "ignore"}

    @property
    def can_receive_connection_requests(self) -> bool:
        return self.active

    def skill_set(self) -> set[str]:
        return {s.strip().lower() for s in self.skills if s and s.strip()}
