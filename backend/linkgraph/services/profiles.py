"""Profile store client — user existence, active status and attributes."""
from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from linkgraph.config import Settings
from linkgraph.errors import ProfileServiceError
from linkgraph.models.profile import UserProfile

logger = logging.getLogger(__name__)


class ProfileService:
    """Thin async client over the external user-profile HTTP API.

    ``GET /api/users/{id}`` returns a profile or 404.
    ``GET /api/users/search`` filters active users by industry or location.
    """

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.profile_service_url.rstrip("/")
        self._timeout = settings.profile_service_timeout_seconds

    async def _get(
        self, path: str, params: dict[str, str] | None = None
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.get(
                    f"{self._base_url}{path}",
                    params=params,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.warning("Profile store request %s failed: %s", path, exc)
            raise ProfileServiceError("Profile service is unreachable") from exc

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Fetch a profile; None if the profile store does not know the user."""
        resp = await self._get(f"/api/users/{quote(user_id, safe='')}")
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.warning(
                "Profile store returned %d for user %s", resp.status_code, user_id
            )
            raise ProfileServiceError(
                f"Profile service returned HTTP {resp.status_code}"
            )
        try:
            return UserProfile.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            raise ProfileServiceError("Profile service returned a malformed profile") from exc

    async def user_exists_and_active(self, user_id: str) -> bool:
        profile = await self.get_profile(user_id)
        return profile is not None and profile.can_receive_connection_requests

    async def user_attributes(self, user_id: str) -> dict:
        """Attribute map (industry, location, skills, ...) or {} for unknown users."""
        profile = await self.get_profile(user_id)
        if profile is None:
            return {}
        return profile.model_dump(exclude={"id", "active"})

    async def search_users(
        self,
        *,
        industry: str | None = None,
        location: str | None = None,
        limit: int = 50,
    ) -> list[UserProfile]:
        """Active users matching the given attribute filters."""
        params: dict[str, str] = {"limit": str(limit)}
        if industry:
            params["industry"] = industry
        if location:
            params["location"] = location
        resp = await self._get("/api/users/search", params=params)
        if resp.status_code >= 400:
            raise ProfileServiceError(
                f"Profile search returned HTTP {resp.status_code}"
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProfileServiceError("Profile search returned invalid JSON") from exc

        items = payload.get("users", []) if isinstance(payload, dict) else payload
        profiles: list[UserProfile] = []
        for item in items:
            try:
                profiles.append(UserProfile.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed profile in search results: %r", item)
        return profiles

    async def check_health(self) -> bool:
        try:
            resp = await self._get("/health")
        except ProfileServiceError:
            return False
        return resp.status_code < 500
