"""
Profile Cache - local copy of the signed-in user's account record.

Screens read the cached profile to decide whether to show premium features.
Writes are best-effort from the activation sequence's point of view.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

from structlog import get_logger

from gowise_premium.exceptions import ProfileCacheError

logger = get_logger(__name__)


class ProfileCache(Protocol):
    """Key/value store for the cached user profile."""

    async def save(self, profile: dict[str, Any] | None) -> None:
        """Replace the cached profile (None clears it)."""
        ...

    async def load(self) -> dict[str, Any] | None:
        """Return the cached profile, if any."""
        ...


class InMemoryProfileCache:
    """Profile cache held in process memory."""

    def __init__(self) -> None:
        self.profile: dict[str, Any] | None = None

    async def save(self, profile: dict[str, Any] | None) -> None:
        self.profile = dict(profile) if profile is not None else None

    async def load(self) -> dict[str, Any] | None:
        return self.profile


class JsonFileProfileCache:
    """
    Profile cache stored as a JSON document keyed by cache key.

    The file holds ``{cache_key: profile}`` so several keys can share it.
    """

    def __init__(self, path: str | Path, cache_key: str) -> None:
        self.path = Path(path).expanduser()
        self.cache_key = cache_key

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            content = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("profile_cache_unreadable", path=str(self.path), error=str(exc))
            return {}
        return content if isinstance(content, dict) else {}

    def _write(self, profile: dict[str, Any] | None) -> None:
        content = self._read_all()
        content[self.cache_key] = profile
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(content, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as exc:
            raise ProfileCacheError(f"Could not write {self.path}: {exc}") from exc

    async def save(self, profile: dict[str, Any] | None) -> None:
        await asyncio.to_thread(self._write, profile)
        logger.debug("profile_cache_saved", path=str(self.path), cleared=profile is None)

    async def load(self) -> dict[str, Any] | None:
        content = await asyncio.to_thread(self._read_all)
        profile = content.get(self.cache_key)
        return profile if isinstance(profile, dict) else None
