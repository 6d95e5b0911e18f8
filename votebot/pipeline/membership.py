from __future__ import annotations

import asyncio
import logging
from typing import Any

from votebot.cache import Clock, ExpiringMap
from votebot.models.item import Actor
from votebot.models.membership import AlternateMap, Membership
from votebot.models.vote_config import AlternateConfig, AlternateDefinition, VoteConfig
from votebot.platform.base import MembershipProvider, PlatformError, SourceFileProvider, is_bot_login

logger = logging.getLogger(__name__)

# primary team -> primary login -> secondary actor
TeamAlternates = dict[str, dict[str, Actor]]


class GroupResolver:
    """Resolves voting groups and their alternate representatives.

    Alternates are computed at most once per repository and alternates
    configuration within the cache window; concurrent callers share the
    same in-flight computation.
    """

    def __init__(
        self,
        *,
        members: MembershipProvider,
        source_files: SourceFileProvider,
        bot_login: str | None = None,
        alternates_ttl_seconds: float = 24 * 3600,
        clock: Clock | None = None,
    ) -> None:
        self._members = members
        self._source_files = source_files
        self._bot_login = bot_login
        cache_kwargs: dict[str, Any] = {"ttl_seconds": alternates_ttl_seconds}
        if clock is not None:
            cache_kwargs["clock"] = clock
        self._alternates: ExpiringMap[asyncio.Future[TeamAlternates]] = ExpiringMap(**cache_kwargs)

    async def resolve_group(self, group: str | None, config: VoteConfig) -> Membership | None:
        if not group:
            return None
        team = await self._members.list_team_members(group)
        if team is None:
            logger.info("Voting group @%s not found", group, extra={"event_type": "voting.group.missing"})
            return None
        members = frozenset(
            actor
            for actor in team
            if not is_bot_login(actor.login, self._bot_login) and not config.is_member_excluded(actor.login)
        )
        return Membership(handle=group, members=members)

    async def resolve_alternates(self, repository: str, group: str | None, config: VoteConfig) -> AlternateMap | None:
        if not group or not config.alternates:
            return None
        key = f"{repository}:{config.alternates_hash()}"
        future = self._alternates.setdefault(
            key, lambda: asyncio.ensure_future(self._compute_alternates(repository, config.alternates or []))
        )
        try:
            by_team = await asyncio.shield(future)
        except Exception:
            self._alternates.invalidate(key)
            logger.exception(
                "Unable to resolve alternates for %s", repository, extra={"event_type": "voting.alternates.error"}
            )
            return None
        delegates = by_team.get(group)
        if not delegates:
            return None
        return AlternateMap(group=group, delegates=dict(delegates))

    def clear_cache(self) -> None:
        self._alternates.clear()

    async def is_login_included(self, login: str, groups: list[str] | None) -> bool:
        """Whether ``login`` is listed directly or through an ``@org/team`` entry.

        ``None`` means unrestricted; an empty list matches no one.
        """
        if groups is None:
            return True
        for entry in groups:
            if entry.startswith("@"):
                team = await self._members.list_team_members(entry[1:])
                if team and any(actor.login == login for actor in team):
                    return True
            elif entry == login:
                return True
        return False

    async def _compute_alternates(self, repository: str, alternates: list[AlternateConfig]) -> TeamAlternates:
        result: TeamAlternates = {}
        for alt in alternates:
            if not alt.valid():
                logger.warning("[%s] Skipping incomplete alternates configuration (%s)", repository, alt.source)
                continue
            data = await self._read_source(repository, alt)
            if data is None:
                continue
            for definition in alt.mapping:
                try:
                    login_to_second = await self._map_login_to_second(repository, data, definition)
                except PlatformError as exc:
                    logger.warning("[%s] Unable to map alternates for %s: %s", repository, definition.field, exc)
                    continue
                if not login_to_second:
                    continue
                if definition.primary is None or not definition.primary.team:
                    continue
                result.setdefault(definition.primary.team, {}).update(login_to_second)
        logger.info(
            "[%s] Resolved alternates for %d team(s)",
            repository,
            len(result),
            extra={"event_type": "voting.alternates.resolved"},
        )
        return result

    async def _read_source(self, repository: str, alt: AlternateConfig) -> dict[str, Any] | None:
        if not alt.repo or not alt.source:
            return None
        try:
            data = await self._source_files.read_structured_file(alt.repo, alt.source)
        except PlatformError as exc:
            logger.warning("[%s] Unable to read %s from %s: %s", repository, alt.source, alt.repo, exc)
            return None
        if data is None:
            logger.warning("[%s] Source %s from %s not found", repository, alt.source, alt.repo)
            return None
        if not isinstance(data, dict):
            logger.warning("[%s] Source %s from %s is not a mapping", repository, alt.source, alt.repo)
            return None
        return data

    async def _map_login_to_second(
        self, repository: str, data: dict[str, Any], definition: AlternateDefinition
    ) -> dict[str, Actor]:
        primary, secondary = definition.primary, definition.secondary
        if primary is None or secondary is None or not definition.field:
            return {}

        primary_rows = _rows(data, primary.data)
        primary_team = await self._members.list_team_members(primary.team or "")
        if primary_rows is None or primary_team is None:
            logger.warning(
                "[%s] Primary config group (%s) or team (%s) not found", repository, primary.data, primary.team
            )
            return {}

        secondary_rows = _rows(data, secondary.data)
        secondary_team = await self._members.list_team_members(secondary.team or "")
        if secondary_rows is None or secondary_team is None:
            logger.warning(
                "[%s] Secondary config group (%s) or team (%s) not found", repository, secondary.data, secondary.team
            )
            return {}

        primary_logins = {actor.login for actor in primary_team}
        secondary_by_login = {actor.login: actor for actor in secondary_team}
        primary_map = _field_to_login(definition.field, primary_rows)
        secondary_map = _field_to_login(definition.field, secondary_rows)

        result: dict[str, Actor] = {}
        for value, primary_login in primary_map.items():
            secondary_login = secondary_map.get(value)
            if secondary_login is None or primary_login not in primary_logins:
                continue
            actor = secondary_by_login.get(secondary_login)
            if actor is not None:
                result[primary_login] = actor
        return result


def _rows(data: dict[str, Any], key: str | None) -> list[Any] | None:
    if not key:
        return None
    rows = data.get(key)
    return rows if isinstance(rows, list) else None


def _field_to_login(field: str, rows: list[Any]) -> dict[str, str]:
    # e.g. egc: [{project: jbang, login: maxandersen}]
    mapping: dict[str, str] = {}
    for row in rows:
        if not isinstance(row, dict):
            continue
        value, login = row.get(field), row.get("login")
        if value is not None and login is not None:
            mapping[str(value)] = str(login)
    return mapping
