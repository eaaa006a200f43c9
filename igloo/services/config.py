from __future__ import annotations

import copy
import datetime
from collections.abc import Mapping
from typing import Any

import attrs
import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from igloo import constants
from igloo.config import ConfigDict, ConfigValue, apply_defaults, default_config, is_known_path, validate_value
from igloo.database import GuildConfig
from igloo.database.base import utcnow
from igloo.errors import StoreUnavailable, UnsupportedVersion, ValidationError
from igloo.log import get_logger
from igloo.utils.caching import GuildCache


__all__ = ("EXPORT_VERSION", "ConfigService", "GuildConfigCache", "GuildConfigDocument")

log = get_logger(__name__)

EXPORT_VERSION = "1.0"


@attrs.define
class GuildConfigDocument:
    """The configuration of one guild, with every schema path resolved to a stored or default value."""

    guild_id: str
    config: ConfigDict
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    def get(self, section: str, key: str, default: Any = None) -> ConfigValue:
        return self.config.get(section, {}).get(key, default)

    def section(self, name: str) -> dict[str, Any]:
        return self.config.get(name, {})

    def to_dict(self) -> ConfigDict:
        return copy.deepcopy(self.config)

    def copy(self) -> GuildConfigDocument:
        return attrs.evolve(self, config=self.to_dict())


class GuildConfigCache(GuildCache[GuildConfigDocument]):
    """Cache of guild configuration documents, keyed by guild id."""

    @classmethod
    def from_settings(cls) -> GuildConfigCache:
        return cls(constants.ConfigCache.max_guilds, ttl=constants.ConfigCache.ttl)


class ConfigService:
    """
    Reads and writes guild configuration documents.

    This is the only path that writes the `guild_configs` table. Every write holds the guild's lock from
    reading the current document until the new one is cached, so concurrent writes to one guild never lose
    each other's changes.
    """

    def __init__(self, db_session: async_sessionmaker[AsyncSession], cache: GuildConfigCache | None = None) -> None:
        self.db_session = db_session
        self.cache = cache if cache is not None else GuildConfigCache.from_settings()

    async def get_guild_config(self, guild_id: str | int, *, strict: bool = False) -> GuildConfigDocument:
        """
        Return the configuration document of a guild, creating it from the defaults on first use.

        If the database cannot be read the defaults are returned instead and nothing is cached, unless
        `strict` is set, in which case StoreUnavailable is raised.
        """
        guild_id = str(guild_id)
        if (document := self.cache.get(guild_id)) is not None:
            return document

        async with self.cache.lock(guild_id):
            try:
                return await self._get_locked(guild_id)
            except StoreUnavailable:
                if strict:
                    raise
                log.error("Could not load the configuration of guild %s, using defaults", guild_id, exc_info=True)
                return GuildConfigDocument(guild_id=guild_id, config=default_config())

    async def update_guild_config(
        self, guild_id: str | int, section: str, key: str, value: ConfigValue
    ) -> GuildConfigDocument:
        """
        Set a single setting and persist the document.

        Raises:
            InvalidPath: the schema does not declare `section.key`
            ValidationError: `value` breaks a constraint of the setting
            StoreUnavailable: the document could not be read or written
        """
        validate_value(section, key, value)
        guild_id = str(guild_id)
        async with self.cache.lock(guild_id):
            updated = (await self._get_locked(guild_id)).copy()
            updated.config.setdefault(section, {})[key] = value
            await self._save(updated)
        log.info("Set %s.%s for guild %s", section, key, guild_id)
        return updated

    async def bulk_update_config(self, guild_id: str | int, updates: Mapping[str, Any]) -> GuildConfigDocument:
        """
        Apply a nested mapping of section to key to value, persisting once.

        Paths the schema does not declare and None values are skipped. Every other value is validated
        before anything is written, so one invalid value rejects the whole update.
        """
        changes = _collect_changes(updates)
        guild_id = str(guild_id)
        async with self.cache.lock(guild_id):
            current = await self._get_locked(guild_id)
            if all(current.get(section, key) == value for (section, key), value in changes.items()):
                return current
            updated = current.copy()
            for (section, key), value in changes.items():
                updated.config.setdefault(section, {})[key] = value
            await self._save(updated)
        log.info("Updated %d setting(s) for guild %s", len(changes), guild_id)
        return updated

    async def reset_guild_config(self, guild_id: str | int) -> GuildConfigDocument:
        """Overwrite the stored document with the defaults."""
        guild_id = str(guild_id)
        async with self.cache.lock(guild_id):
            current = await self._get_locked(guild_id)
            updated = attrs.evolve(current, config=default_config())
            await self._save(updated)
        log.info("Reset the configuration of guild %s", guild_id)
        return updated

    async def export_config(self, guild_id: str | int) -> dict[str, Any]:
        document = await self.get_guild_config(guild_id, strict=True)
        return {
            "version": EXPORT_VERSION,
            "timestamp": utcnow().isoformat(),
            "guild_id": document.guild_id,
            "config": document.to_dict(),
        }

    async def import_config(self, guild_id: str | int, payload: Any) -> GuildConfigDocument:
        """
        Merge an exported configuration into a guild's document.

        Sections are merged key by key, imported values replacing the current ones.
        Unknown sections and keys are skipped, as are None values.

        Raises:
            ValidationError: the payload is not an export, or one of its values is invalid
            UnsupportedVersion: the payload was exported by a different format version
        """
        if not isinstance(payload, Mapping) or "version" not in payload or "config" not in payload:
            raise ValidationError("Invalid import data format", constraint="invalid format")
        if payload["version"] != EXPORT_VERSION:
            raise UnsupportedVersion(payload["version"])
        if not isinstance(payload["config"], Mapping):
            raise ValidationError("Invalid import data format", constraint="invalid format")

        document = await self.bulk_update_config(guild_id, payload["config"])
        log.info("Imported a configuration into guild %s", document.guild_id)
        return document

    def invalidate(self, guild_id: str | int) -> bool:
        """Forget the cached document of a guild, so the next read goes to the database."""
        return self.cache.invalidate(str(guild_id))

    async def iter_guild_ids(self) -> list[str]:
        """Return the id of every guild which has a stored document."""
        try:
            async with self.db_session() as session:
                result = await session.scalars(sa.select(GuildConfig.guild_id).order_by(GuildConfig.id))
                return list(result.all())
        except SQLAlchemyError as e:
            raise StoreUnavailable("list configured guilds") from e

    async def _get_locked(self, guild_id: str) -> GuildConfigDocument:
        # the caller must hold the guild's lock
        if (document := self.cache.get(guild_id)) is not None:
            return document
        try:
            document = await self._load_or_create(guild_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable("load the configuration", guild_id) from e
        self.cache.set(guild_id, document)
        return document

    async def _load_or_create(self, guild_id: str) -> GuildConfigDocument:
        async with self.db_session.begin() as session:
            row = await session.scalar(sa.select(GuildConfig).where(GuildConfig.guild_id == guild_id))
            if row is None:
                log.debug("Creating the configuration of guild %s", guild_id)
                row = GuildConfig(guild_id=guild_id, config=default_config())
                session.add(row)
                await session.flush()
            return GuildConfigDocument(
                guild_id=guild_id,
                config=apply_defaults(row.config or {}),
                created_at=row.created_at,
                updated_at=row.updated_at,
            )

    async def _save(self, document: GuildConfigDocument) -> None:
        # the caller must hold the guild's lock; the cache only changes once the write is committed
        document.updated_at = utcnow()
        try:
            async with self.db_session.begin() as session:
                row = await session.scalar(sa.select(GuildConfig).where(GuildConfig.guild_id == document.guild_id))
                if row is None:
                    row = GuildConfig(guild_id=document.guild_id)
                    session.add(row)
                row.config = document.to_dict()
                row.updated_at = document.updated_at
        except SQLAlchemyError as e:
            raise StoreUnavailable("save the configuration", document.guild_id) from e
        self.cache.set(document.guild_id, document)


def _collect_changes(updates: Mapping[str, Any]) -> dict[tuple[str, str], ConfigValue]:
    """Flatten and validate the known, non-None paths of a nested update."""
    changes: dict[tuple[str, str], ConfigValue] = {}
    for section, values in updates.items():
        if not isinstance(values, Mapping):
            continue
        for key, value in values.items():
            if value is None or not is_known_path(section, key):
                continue
            validate_value(section, key, value)
            changes[section, key] = value
    return changes
