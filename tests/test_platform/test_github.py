from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from tests.fixtures.platform_fakes import make_item
from votebot.models.item import CommentRef, ItemKind, ReactionContent
from votebot.platform.base import PlatformError
from votebot.platform.github import GitHubPlatform

BOT = "haus-rules-bot[bot]"

Handler = Callable[[httpx.Request], httpx.Response]


def _platform(handler: Handler) -> GitHubPlatform:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GitHubPlatform("ghp_token", api_url="https://api.github.test", bot_login=BOT, client=client)


def _graphql(request: httpx.Request) -> tuple[str, dict[str, Any]]:
    payload = json.loads(request.content)
    return payload["query"], payload["variables"]


def _page(nodes: list[dict[str, Any]], cursor: str | None = None) -> dict[str, Any]:
    return {"nodes": nodes, "pageInfo": {"hasNextPage": cursor is not None, "endCursor": cursor}}


# --- queries ---

@pytest.mark.asyncio
async def test_team_members_are_paginated() -> None:
    seen: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer ghp_token"
        _, variables = _graphql(request)
        seen.append(variables)
        if variables["after"] is None:
            members = _page([{"login": "alice", "url": "https://github.com/alice"}], cursor="c1")
        else:
            members = _page([{"login": "bob", "url": "https://github.com/bob"}])
        return httpx.Response(200, json={"data": {"organization": {"team": {"members": members}}}})

    platform = _platform(handler)
    members = await platform.list_team_members("org/quorum")

    assert [m.login for m in members or []] == ["alice", "bob"]
    assert seen[0] == {"org": "org", "team": "quorum", "after": None}
    assert seen[1]["after"] == "c1"


@pytest.mark.asyncio
async def test_unknown_team_is_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": {"organization": {"team": None}}, "errors": [{"type": "NOT_FOUND", "message": "nope"}]},
        )

    assert await _platform(handler).list_team_members("org/ghosts") is None
    assert await _platform(handler).list_team_members("not-a-team") is None


@pytest.mark.asyncio
async def test_graphql_errors_raise_platform_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": None, "errors": [{"message": "rate limited"}]})

    with pytest.raises(PlatformError, match="rate limited"):
        await _platform(handler).list_reactions(make_item())


@pytest.mark.asyncio
async def test_http_errors_raise_platform_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(PlatformError):
        await _platform(handler).list_comments(make_item())


@pytest.mark.asyncio
async def test_reactions_normalize_graphql_names() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        reactions = _page(
            [
                {"user": {"login": "alice"}, "content": "THUMBS_UP", "createdAt": "2024-05-01T12:00:00Z"},
                {"user": None, "content": "HEART", "createdAt": "2024-05-01T12:01:00Z"},
                {"user": {"login": "bob"}, "content": "EYES", "createdAt": "2024-05-01T12:02:00Z"},
            ]
        )
        return httpx.Response(200, json={"data": {"node": {"reactions": reactions}}})

    reactions = await _platform(handler).list_reactions(make_item())
    assert [(r.user.login, r.content) for r in reactions] == [("alice", "+1"), ("bob", "eyes")]


@pytest.mark.asyncio
async def test_reviews_skip_pending_and_ghost_authors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        reviews = _page(
            [
                {"author": {"login": "alice"}, "state": "APPROVED", "submittedAt": "2024-05-01T12:00:00Z"},
                {"author": None, "state": "APPROVED", "submittedAt": "2024-05-01T12:00:00Z"},
                {"author": {"login": "bob"}, "state": "PENDING", "submittedAt": None},
            ]
        )
        return httpx.Response(200, json={"data": {"node": {"reviews": reviews}}})

    reviews = await _platform(handler).list_pull_request_reviews(make_item(kind=ItemKind.PULL_REQUEST))
    assert [(r.author.login, r.state) for r in reviews] == [("alice", "APPROVED")]


@pytest.mark.asyncio
async def test_linked_comment_must_belong_to_bot() -> None:
    author = {"login": BOT}

    def handler(request: httpx.Request) -> httpx.Response:
        node = {"id": "IC_1", "url": "https://c/1", "body": "status", "author": author}
        return httpx.Response(200, json={"data": {"node": node}})

    platform = _platform(handler)
    assert await platform.find_existing_bot_comment(make_item(), "IC_1") == CommentRef(
        id="IC_1", url="https://c/1", body="status"
    )
    author = {"login": "haus-rules-bot"}
    assert await platform.find_existing_bot_comment(make_item(), "IC_1") is not None
    author = {"login": "mallory"}
    assert await platform.find_existing_bot_comment(make_item(), "IC_1") is None


@pytest.mark.asyncio
async def test_get_item_reads_current_state() -> None:
    node: dict[str, Any] | None = {
        "__typename": "Issue",
        "id": "I_7",
        "number": 7,
        "url": "https://github.com/org/governance/issues/7",
        "title": "Adopt the new charter",
        "body": "[🗳️ Vote progress](https://c/1 \"IC_1\")\r\n\r\nfresh",
        "closed": True,
        "labels": {"nodes": [{"name": "vote/done"}]},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        _, variables = _graphql(request)
        assert variables == {"id": "I_7"}
        return httpx.Response(200, json={"data": {"node": node}})

    platform = _platform(handler)
    current = await platform.get_item(make_item())
    assert current is not None
    assert current.body.endswith("fresh")
    assert current.closed
    assert current.labels == frozenset({"vote/done"})
    assert current.repository == "org/governance"

    node = None
    assert await platform.get_item(make_item()) is None


@pytest.mark.asyncio
async def test_search_returns_issues_and_discussions() -> None:
    searched: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        _, variables = _graphql(request)
        searched.append(variables["type"])
        assert variables["query"] == 'repo:org/governance label:"vote/open"'
        typename = "Issue" if variables["type"] == "ISSUE" else "Discussion"
        node = {
            "__typename": typename,
            "id": f"{typename}_1",
            "number": 1,
            "url": "https://github.com/org/governance/1",
            "title": "t",
            "body": "b",
            "closed": False,
            "labels": {"nodes": [{"name": "vote/open"}]},
        }
        return httpx.Response(200, json={"data": {"search": _page([node, {}])}})

    items = await _platform(handler).list_open_vote_items("org/governance", "vote/open")
    assert searched == ["ISSUE", "DISCUSSION"]
    assert [item.kind for item in items] == [ItemKind.ISSUE, ItemKind.DISCUSSION]
    assert all(item.labels == frozenset({"vote/open"}) for item in items)


# --- repository files ---

@pytest.mark.asyncio
async def test_read_structured_file_parses_yaml() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/repos/org/governance/contents/.github/votebot.yml"
        assert request.headers["Accept"] == "application/vnd.github.raw+json"
        return httpx.Response(200, text="voting:\n  managers:\n    - '@org/board'\n")

    data = await _platform(handler).read_structured_file("org/governance", "/.github/votebot.yml")
    assert data == {"voting": {"managers": ["@org/board"]}}


@pytest.mark.asyncio
async def test_missing_file_is_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    assert await _platform(handler).read_structured_file("org/governance", "missing.yml") is None


@pytest.mark.asyncio
async def test_malformed_yaml_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="voting: [unclosed")

    with pytest.raises(PlatformError):
        await _platform(handler).read_structured_file("org/governance", "bad.yml")


# --- mutations ---

@pytest.mark.asyncio
async def test_new_discussion_comment_uses_discussion_mutation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        query, variables = _graphql(request)
        assert "addDiscussionComment" in query
        assert variables == {"discussionId": "I_7", "body": "status"}
        comment = {"id": "DC_1", "url": "https://c/d1", "body": "status"}
        return httpx.Response(200, json={"data": {"addDiscussionComment": {"comment": comment}}})

    ref = await _platform(handler).upsert_comment(make_item(kind=ItemKind.DISCUSSION), None, "status")
    assert ref == CommentRef(id="DC_1", url="https://c/d1", body="status")


@pytest.mark.asyncio
async def test_existing_issue_comment_is_updated() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        query, variables = _graphql(request)
        assert "updateIssueComment" in query
        assert variables["id"] == "IC_1"
        comment = {"id": "IC_1", "url": "https://c/1", "body": "new"}
        return httpx.Response(200, json={"data": {"updateIssueComment": {"issueComment": comment}}})

    ref = await _platform(handler).upsert_comment(make_item(), CommentRef(id="IC_1", url="https://c/1"), "new")
    assert ref.body == "new"


@pytest.mark.asyncio
async def test_labels_are_resolved_to_ids() -> None:
    mutations: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        query, variables = _graphql(request)
        if "repository(" in query:
            labels = _page([{"id": "L_open", "name": "vote/open"}, {"id": "L_done", "name": "vote/done"}])
            return httpx.Response(200, json={"data": {"repository": {"labels": labels}}})
        mutations.append(variables)
        return httpx.Response(200, json={"data": {}})

    platform = _platform(handler)
    item = make_item()
    await platform.remove_labels(item, ["vote/open", "vote/quorum"])
    await platform.add_label(item, "vote/done")
    await platform.add_label(item, "vote/unknown")

    assert mutations == [
        {"id": "I_7", "labelIds": ["L_open"]},
        {"id": "I_7", "labelIds": ["L_done"]},
    ]
    assert await platform.list_repository_labels("org/governance", ["vote/open", "vote/quorum"]) == {"vote/open"}


@pytest.mark.asyncio
async def test_bot_reaction_uses_graphql_content_name() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        query, variables = _graphql(request)
        assert "addReaction" in query
        assert variables == {"id": "I_7", "content": "CONFUSED"}
        return httpx.Response(200, json={"data": {"addReaction": {"clientMutationId": None}}})

    await _platform(handler).add_bot_reaction(make_item(), ReactionContent.CONFUSED)
