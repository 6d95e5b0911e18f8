from __future__ import annotations

import asyncio

import pytest

from tests.fixtures.platform_fakes import BOT, FakePlatform
from votebot.models.vote_config import VoteConfig
from votebot.pipeline.membership import GroupResolver

ALTERNATES = [
    {
        "source": "CONTACTS.yaml",
        "repo": "org/people",
        "mapping": [
            {
                "field": "project",
                "primary": {"data": "egc", "team": "org/egc"},
                "secondary": {"data": "egc-second", "team": "org/egc-second"},
            }
        ],
    }
]

CONTACTS = {
    "egc": [
        {"project": "jbang", "login": "max"},
        {"project": "quarkus", "login": "george"},
        {"project": "orphan", "login": "nobody"},
    ],
    "egc-second": [
        {"project": "jbang", "login": "jill"},
        {"project": "quarkus", "login": "gwen"},
    ],
}


def _platform() -> FakePlatform:
    platform = FakePlatform()
    platform.add_team("org/egc", ["max", "george", BOT, "dependabot[bot]"])
    platform.add_team("org/egc-second", ["jill", "gwen"])
    platform.files[("org/people", "CONTACTS.yaml")] = CONTACTS
    return platform


def _resolver(platform: FakePlatform) -> GroupResolver:
    return GroupResolver(members=platform, source_files=platform, bot_login=BOT)


@pytest.mark.asyncio
async def test_resolve_group_removes_bots_and_exclusions() -> None:
    platform = _platform()
    membership = await _resolver(platform).resolve_group("org/egc", VoteConfig(exclude_login=["george"]))
    assert membership is not None
    assert membership.logins == frozenset({"max"})


@pytest.mark.asyncio
async def test_resolve_group_missing_team() -> None:
    resolver = _resolver(_platform())
    assert await resolver.resolve_group("org/missing", VoteConfig()) is None
    assert await resolver.resolve_group(None, VoteConfig()) is None


@pytest.mark.asyncio
async def test_resolve_alternates_cross_references_field() -> None:
    platform = _platform()
    alternates = await _resolver(platform).resolve_alternates(
        "org/governance", "org/egc", VoteConfig(alternates=ALTERNATES)
    )
    assert alternates is not None
    assert alternates.delegate_for("max").login == "jill"
    assert alternates.delegate_for("george").login == "gwen"
    assert alternates.delegate_for("nobody") is None


@pytest.mark.asyncio
async def test_alternates_only_for_mapped_group() -> None:
    resolver = _resolver(_platform())
    config = VoteConfig(alternates=ALTERNATES)
    assert await resolver.resolve_alternates("org/governance", "org/other", config) is None
    assert await resolver.resolve_alternates("org/governance", "org/egc", VoteConfig()) is None


@pytest.mark.asyncio
async def test_alternates_computed_once_per_config() -> None:
    platform = _platform()
    resolver = _resolver(platform)
    config = VoteConfig(alternates=ALTERNATES)
    results = await asyncio.gather(
        *(resolver.resolve_alternates("org/governance", "org/egc", config) for _ in range(5))
    )
    assert all(result is not None for result in results)
    assert platform.file_reads == 1

    changed = VoteConfig(alternates=[{**ALTERNATES[0], "source": "OTHER.yaml"}])
    assert await resolver.resolve_alternates("org/governance", "org/egc", changed) is None
    assert platform.file_reads == 2


@pytest.mark.asyncio
async def test_alternates_missing_stages_yield_nothing() -> None:
    platform = _platform()
    platform.files.clear()
    resolver = _resolver(platform)
    assert await resolver.resolve_alternates("org/governance", "org/egc", VoteConfig(alternates=ALTERNATES)) is None

    platform = _platform()
    del platform.teams["org/egc-second"]
    resolver = _resolver(platform)
    assert await resolver.resolve_alternates("org/governance", "org/egc", VoteConfig(alternates=ALTERNATES)) is None


@pytest.mark.asyncio
async def test_incomplete_alternates_config_is_skipped() -> None:
    platform = _platform()
    resolver = _resolver(platform)
    no_secondary = {"field": "project", "primary": {"data": "egc", "team": "org/egc"}}
    configs = [
        VoteConfig(alternates=[{**ALTERNATES[0], "mapping": [no_secondary]}]),
        VoteConfig(alternates=[{**ALTERNATES[0], "repo": None}]),
    ]
    for config in configs:
        assert await resolver.resolve_alternates("org/governance", "org/egc", config) is None
    assert platform.file_reads == 0


@pytest.mark.asyncio
async def test_one_broken_mapping_does_not_block_others() -> None:
    platform = _platform()
    broken = {
        "field": "project",
        "primary": {"data": "missing", "team": "org/egc"},
        "secondary": {"data": "egc-second", "team": "org/egc-second"},
    }
    config = VoteConfig(alternates=[{**ALTERNATES[0], "mapping": [broken, *ALTERNATES[0]["mapping"]]}])
    alternates = await _resolver(platform).resolve_alternates("org/governance", "org/egc", config)
    assert alternates is not None
    assert alternates.delegate_for("max").login == "jill"


@pytest.mark.asyncio
async def test_is_login_included() -> None:
    platform = _platform()
    platform.add_team("org/board", ["boss"])
    resolver = _resolver(platform)
    assert await resolver.is_login_included("anyone", None)
    assert not await resolver.is_login_included("anyone", [])
    assert await resolver.is_login_included("alice", ["alice"])
    assert await resolver.is_login_included("boss", ["@org/board"])
    assert not await resolver.is_login_included("max", ["@org/board", "alice"])
