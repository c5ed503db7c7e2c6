"""Persistence of each user's ordered catalog sources and settings."""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..catalog_ids import Source, find_ambiguities
from ..db_models import CatalogSourceRecord, UserProfile
from ..models import UserKeys, parse_source
from ..utils import generate_user_id

logger = logging.getLogger(__name__)

_UNSET = object()


class ConfigStore:
    """Reads and mutates user configuration stored in the database.

    Every mutation reports the affected user through ``on_change`` so cached
    addon interfaces can be dropped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        on_change: Callable[[str], None] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._on_change = on_change

    def _changed(self, user_id: str) -> None:
        if self._on_change is not None:
            self._on_change(user_id)

    async def create_user(self, user_id: str | None = None) -> str:
        user_id = user_id or generate_user_id()
        async with self._session_factory() as session:
            if await session.get(UserProfile, user_id) is not None:
                raise ValueError(f"User {user_id} already exists")
            session.add(UserProfile(id=user_id, randomized_catalogs=[]))
            await session.commit()
        logger.info("Created user %s", user_id)
        return user_id

    async def user_exists(self, user_id: str) -> bool:
        async with self._session_factory() as session:
            return await session.get(UserProfile, user_id) is not None

    async def get_all_sources(self, user_id: str) -> list[Source]:
        """Return the user's sources in configured order; unknown users have none."""

        async with self._session_factory() as session:
            profile = await self._load_profile(session, user_id)
            if profile is None:
                return []
            return _parse_records(profile.sources, user_id)

    async def get_randomized_source_ids(self, user_id: str) -> set[str]:
        async with self._session_factory() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                return set()
            return set(profile.randomized_catalogs or [])

    async def get_api_keys(self, user_id: str) -> UserKeys:
        async with self._session_factory() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                return UserKeys()
            return UserKeys(
                mdblist_api_key=profile.mdblist_api_key,
                rpdb_api_key=profile.rpdb_api_key,
            )

    async def add_source(self, user_id: str, source: Source) -> Source:
        """Append ``source``, or replace the stored source with the same id.

        Raises ``KeyError`` for unknown users and ``ValueError`` when the new
        source would make composite catalog ids route to the wrong source.
        """

        async with self._session_factory() as session:
            profile = await self._require_profile(session, user_id)
            existing = next(
                (record for record in profile.sources if record.source_id == source.id),
                None,
            )
            if existing is not None and source.custom_name is None:
                previous = existing.payload.get("customName")
                if previous:
                    source = source.model_copy(update={"custom_name": previous})

            current = _parse_records(profile.sources, user_id)
            candidate = [
                source if item.id == source.id else item for item in current
            ]
            if existing is None:
                candidate.append(source)
            introduced = set(find_ambiguities(candidate)) - set(find_ambiguities(current))
            if introduced:
                raise ValueError(
                    "Catalog ids would be ambiguous: " + ", ".join(sorted(introduced))
                )

            payload = source.to_payload()
            if existing is not None:
                existing.payload = payload
            else:
                position = max((record.position for record in profile.sources), default=-1)
                session.add(
                    CatalogSourceRecord(
                        user_id=user_id,
                        source_id=source.id,
                        position=position + 1,
                        payload=payload,
                    )
                )
            await session.commit()

        logger.info("Saved catalog source %s for user %s", source.id, user_id)
        self._changed(user_id)
        return source

    async def remove_source(self, user_id: str, source_id: str) -> bool:
        async with self._session_factory() as session:
            profile = await self._require_profile(session, user_id)
            record = next(
                (item for item in profile.sources if item.source_id == source_id), None
            )
            if record is None:
                return False
            profile.sources.remove(record)
            randomized = [
                entry for entry in (profile.randomized_catalogs or []) if entry != source_id
            ]
            profile.randomized_catalogs = randomized
            await session.commit()

        logger.info("Removed catalog source %s for user %s", source_id, user_id)
        self._changed(user_id)
        return True

    async def update_source(
        self,
        user_id: str,
        source_id: str,
        *,
        custom_name: str | None = None,
        randomize: bool | None = None,
    ) -> Source:
        """Rename a source (blank clears the override) or toggle its shuffling."""

        async with self._session_factory() as session:
            profile = await self._require_profile(session, user_id)
            record = next(
                (item for item in profile.sources if item.source_id == source_id), None
            )
            if record is None:
                raise KeyError(f"Source {source_id} not found")

            if custom_name is not None:
                payload = dict(record.payload)
                cleaned = custom_name.strip()
                if cleaned:
                    payload["customName"] = cleaned
                else:
                    payload.pop("customName", None)
                record.payload = payload

            if randomize is not None:
                randomized = [
                    entry
                    for entry in (profile.randomized_catalogs or [])
                    if entry != source_id
                ]
                if randomize:
                    randomized.append(source_id)
                profile.randomized_catalogs = randomized

            source = parse_source(record.payload)
            await session.commit()

        self._changed(user_id)
        return source

    async def save_api_keys(
        self,
        user_id: str,
        *,
        mdblist_api_key: object = _UNSET,
        rpdb_api_key: object = _UNSET,
    ) -> UserKeys:
        """Store the given keys; omitted keys keep their value, blanks clear them."""

        async with self._session_factory() as session:
            profile = await self._require_profile(session, user_id)
            if mdblist_api_key is not _UNSET:
                profile.mdblist_api_key = _clean_key(mdblist_api_key)
            if rpdb_api_key is not _UNSET:
                profile.rpdb_api_key = _clean_key(rpdb_api_key)
            keys = UserKeys(
                mdblist_api_key=profile.mdblist_api_key,
                rpdb_api_key=profile.rpdb_api_key,
            )
            await session.commit()

        self._changed(user_id)
        return keys

    @staticmethod
    async def _load_profile(session: AsyncSession, user_id: str) -> UserProfile | None:
        result = await session.execute(
            select(UserProfile)
            .where(UserProfile.id == user_id)
            .options(selectinload(UserProfile.sources))
        )
        return result.scalar_one_or_none()

    async def _require_profile(self, session: AsyncSession, user_id: str) -> UserProfile:
        profile = await self._load_profile(session, user_id)
        if profile is None:
            raise KeyError(f"User {user_id} not found")
        return profile


def _clean_key(value: object) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _parse_records(records: list[CatalogSourceRecord], user_id: str) -> list[Source]:
    sources: list[Source] = []
    for record in records:
        try:
            sources.append(parse_source(record.payload))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid source %s for user %s: %s",
                record.source_id,
                user_id,
                exc,
            )
    return sources
