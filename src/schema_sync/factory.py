"""Live connection factory.

Resolves which profile to use, turns it into a connection string, and keeps
one pooled adapter per target in a ``ConnectionRegistry``.  The registry is
owned by the engine that uses it; there is no module-level cache.

Usage:
    from schema_sync.factory import ConnectionRegistry, get_active_profile

    name, profile = get_active_profile(config, explicit="staging")
    registry = ConnectionRegistry()
    live = registry.get(resolve_url(profile))
    ...
    await registry.close()
"""

import logging
from collections.abc import Callable
from urllib.parse import quote

from schema_sync.adapters.base import DatabaseClient
from schema_sync.adapters.postgres import AsyncPostgresAdapter
from schema_sync.config.loader import Settings, get_settings
from schema_sync.config.models import DatabaseProfile, ProjectConfig
from schema_sync.errors import ProfileNotFoundError, sanitize_connection_string

logger = logging.getLogger(__name__)

PASSWORD_PLACEHOLDER = "[YOUR-PASSWORD]"


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(
    config: ProjectConfig,
    explicit: str | None = None,
    settings: Settings | None = None,
) -> str:
    """Get the profile name to use.

    Priority:
    1. Explicit argument (``--profile``)
    2. ``SCHEMA_SYNC_PROFILE`` / ``DB_PROFILE`` env var
    3. ``default_profile`` in schema-sync.toml
    4. Raise ProfileNotFoundError

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if explicit:
        return explicit

    settings = settings or get_settings()
    if settings.profile:
        return settings.profile

    if config.default_profile:
        return config.default_profile

    available = ", ".join(sorted(config.profiles)) or "(none)"
    raise ProfileNotFoundError(
        "No database profile selected.\n"
        "Pass --profile <name>, set SCHEMA_SYNC_PROFILE, or set default_profile.\n"
        f"Available profiles: {available}"
    )


def get_active_profile(
    config: ProjectConfig,
    explicit: str | None = None,
    settings: Settings | None = None,
) -> tuple[str, DatabaseProfile]:
    """Get active profile name and configuration.

    Returns:
        Tuple of (profile_name, DatabaseProfile)

    Raises:
        ProfileNotFoundError: If no profile is selected or the name is unknown
    """
    profile_name = get_active_profile_name(config, explicit, settings)

    if profile_name not in config.profiles:
        available = ", ".join(sorted(config.profiles)) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in schema-sync.toml.\n"
            f"Available profiles: {available}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> resolve_url(DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and PASSWORD_PLACEHOLDER in url:
        url = url.replace(PASSWORD_PLACEHOLDER, quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Connection Registry
# ============================================================================


class ConnectionRegistry:
    """Pooled live connections keyed by connection string.

    ``get(url)`` returns the cached adapter when the target is unchanged.
    When a different target is requested, the previous pool is scheduled for
    disposal and a new one is created.

    Args:
        adapter_factory: Builds an adapter for a connection string.
            Defaults to ``AsyncPostgresAdapter``.
    """

    def __init__(
        self,
        adapter_factory: Callable[[str], DatabaseClient] | None = None,
    ) -> None:
        self._adapter_factory = adapter_factory or AsyncPostgresAdapter
        self._key: str | None = None
        self._adapter: DatabaseClient | None = None
        self._retired: list[DatabaseClient] = []

    @property
    def current_target(self) -> str | None:
        """Redacted connection string of the cached pool."""
        return sanitize_connection_string(self._key) if self._key else None

    def get(self, connection_string: str) -> DatabaseClient:
        """Adapter for *connection_string*, reusing the pool for the same target."""
        if self._adapter is not None and self._key == connection_string:
            return self._adapter

        if self._adapter is not None:
            logger.debug("Target changed, retiring pool for %s", self.current_target)
            self._retired.append(self._adapter)

        self._adapter = self._adapter_factory(connection_string)
        self._key = connection_string
        logger.debug("Created pool for %s", self.current_target)
        return self._adapter

    async def release_retired(self) -> None:
        """Dispose pools replaced by a target change."""
        retired, self._retired = self._retired, []
        for adapter in retired:
            await adapter.close()

    async def close(self) -> None:
        """Dispose every pool; the registry can be reused afterwards."""
        await self.release_retired()
        if self._adapter is not None:
            await self._adapter.close()
        self._adapter = None
        self._key = None
