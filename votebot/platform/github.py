from __future__ import annotations

import logging
from typing import Any

import httpx
import yaml

from votebot.config import Settings
from votebot.models.item import (
    Actor,
    CommentRef,
    ItemKind,
    PlatformComment,
    PlatformReaction,
    PullRequestReview,
    ReactionContent,
    VoteItem,
)
from votebot.platform.base import Platform, PlatformError, is_bot_login

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

_ITEM_FIELDS = """
  __typename
  id number url title body closed
  labels(first: 50) { nodes { name } }
"""

_TEAM_MEMBERS = """
query($org: String!, $team: String!, $after: String) {
  organization(login: $org) {
    team(slug: $team) {
      members(first: 100, after: $after) {
        nodes { login url }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_REVIEWS = """
query($id: ID!, $after: String) {
  node(id: $id) {
    ... on PullRequest {
      reviews(first: 100, after: $after) {
        nodes { author { login url } state submittedAt body url }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_REACTIONS = """
query($id: ID!, $after: String) {
  node(id: $id) {
    ... on Reactable {
      reactions(first: 100, after: $after) {
        nodes { user { login url } content createdAt }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_COMMENTS = """
query($id: ID!, $after: String) {
  node(id: $id) {
    ... on Issue {
      comments(first: 100, after: $after) {
        nodes { id url body createdAt author { login url } }
        pageInfo { hasNextPage endCursor }
      }
    }
    ... on PullRequest {
      comments(first: 100, after: $after) {
        nodes { id url body createdAt author { login url } }
        pageInfo { hasNextPage endCursor }
      }
    }
    ... on Discussion {
      comments(first: 100, after: $after) {
        nodes { id url body createdAt author { login url } }
        pageInfo { hasNextPage endCursor }
      }
    }
  }
}
"""

_COMMENT_BY_ID = """
query($id: ID!) {
  node(id: $id) {
    ... on IssueComment { id url body author { login } }
    ... on DiscussionComment { id url body author { login } }
  }
}
"""

_LABELS = """
query($owner: String!, $name: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    labels(first: 100, after: $after) {
      nodes { id name }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""

_SEARCH_ITEMS = (
    """
query($query: String!, $type: SearchType!, $after: String) {
  search(query: $query, type: $type, first: 50, after: $after) {
    nodes {
      ... on Issue {"""
    + _ITEM_FIELDS
    + """}
      ... on PullRequest {"""
    + _ITEM_FIELDS
    + """}
      ... on Discussion {"""
    + _ITEM_FIELDS
    + """}
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""
)

_ITEM = (
    """
query($id: ID!) {
  node(id: $id) {
    ... on Issue {"""
    + _ITEM_FIELDS
    + """}
    ... on PullRequest {"""
    + _ITEM_FIELDS
    + """}
    ... on Discussion {"""
    + _ITEM_FIELDS
    + """}
  }
}
"""
)

_ADD_COMMENT = """
mutation($subjectId: ID!, $body: String!) {
  addComment(input: {subjectId: $subjectId, body: $body}) {
    commentEdge { node { id url body } }
  }
}
"""

_ADD_DISCUSSION_COMMENT = """
mutation($discussionId: ID!, $body: String!) {
  addDiscussionComment(input: {discussionId: $discussionId, body: $body}) {
    comment { id url body }
  }
}
"""

_UPDATE_COMMENT = """
mutation($id: ID!, $body: String!) {
  updateIssueComment(input: {id: $id, body: $body}) {
    issueComment { id url body }
  }
}
"""

_UPDATE_DISCUSSION_COMMENT = """
mutation($commentId: ID!, $body: String!) {
  updateDiscussionComment(input: {commentId: $commentId, body: $body}) {
    comment { id url body }
  }
}
"""

_UPDATE_BODY = {
    ItemKind.ISSUE: "mutation($id: ID!, $body: String!) { updateIssue(input: {id: $id, body: $body}) { clientMutationId } }",
    ItemKind.PULL_REQUEST: (
        "mutation($id: ID!, $body: String!) "
        "{ updatePullRequest(input: {pullRequestId: $id, body: $body}) { clientMutationId } }"
    ),
    ItemKind.DISCUSSION: (
        "mutation($id: ID!, $body: String!) "
        "{ updateDiscussion(input: {discussionId: $id, body: $body}) { clientMutationId } }"
    ),
}

_ADD_LABELS = """
mutation($id: ID!, $labelIds: [ID!]!) {
  addLabelsToLabelable(input: {labelableId: $id, labelIds: $labelIds}) { clientMutationId }
}
"""

_REMOVE_LABELS = """
mutation($id: ID!, $labelIds: [ID!]!) {
  removeLabelsFromLabelable(input: {labelableId: $id, labelIds: $labelIds}) { clientMutationId }
}
"""

_ADD_REACTION = """
mutation($id: ID!, $content: ReactionContent!) {
  addReaction(input: {subjectId: $id, content: $content}) { clientMutationId }
}
"""

_REMOVE_REACTION = """
mutation($id: ID!, $content: ReactionContent!) {
  removeReaction(input: {subjectId: $id, content: $content}) { clientMutationId }
}
"""

_KINDS = {"Issue": ItemKind.ISSUE, "PullRequest": ItemKind.PULL_REQUEST, "Discussion": ItemKind.DISCUSSION}


class GitHubPlatform(Platform):
    """GitHub GraphQL (and REST contents) implementation of the platform collaborators."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.github.com",
        timeout_seconds: float = 20.0,
        bot_login: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.graphql_url = f"{self.api_url}/graphql"
        self.bot_login = bot_login
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._label_ids: dict[str, dict[str, str]] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubPlatform:
        return cls(
            settings.github_token,
            api_url=settings.github_api_url,
            timeout_seconds=settings.github_http_timeout_seconds,
            bot_login=settings.bot_login,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self.client.post(
                self.graphql_url, json={"query": query, "variables": variables or {}}, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PlatformError(f"GitHub GraphQL request failed: {exc}") from exc
        payload = response.json()
        errors = [e for e in payload.get("errors") or [] if e.get("type") != "NOT_FOUND"]
        if errors:
            raise PlatformError("; ".join(str(e.get("message", e)) for e in errors))
        return payload.get("data") or {}

    async def _paginate(self, query: str, variables: dict[str, Any], path: tuple[str, ...]) -> list[dict[str, Any]] | None:
        """All nodes of the connection at ``path``; None when the owning object is missing."""
        nodes: list[dict[str, Any]] = []
        after: str | None = None
        while True:
            data = await self.graphql(query, {**variables, "after": after})
            connection = _dig(data, path)
            if connection is None:
                return None if after is None else nodes
            nodes.extend(node for node in connection.get("nodes") or [] if node)
            page = connection.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                return nodes
            after = page.get("endCursor")

    # MembershipProvider

    async def list_team_members(self, group: str) -> list[Actor] | None:
        org, _, team = group.partition("/")
        if not org or not team:
            return None
        nodes = await self._paginate(_TEAM_MEMBERS, {"org": org, "team": team}, ("organization", "team", "members"))
        if nodes is None:
            return None
        return [Actor(login=node["login"], url=node.get("url") or "") for node in nodes]

    async def list_pull_request_reviews(self, item: VoteItem) -> list[PullRequestReview]:
        nodes = await self._paginate(_REVIEWS, {"id": item.id}, ("node", "reviews")) or []
        reviews: list[PullRequestReview] = []
        for node in nodes:
            author = _actor(node.get("author"))
            if author is None or not node.get("submittedAt"):
                continue
            reviews.append(
                PullRequestReview(
                    author=author,
                    state=node["state"],
                    submitted_at=node["submittedAt"],
                    body=node.get("body") or "",
                    url=node.get("url") or "",
                )
            )
        return reviews

    # SourceFileProvider

    async def read_structured_file(self, repo: str, path: str) -> Any | None:
        url = f"{self.api_url}/repos/{repo}/contents/{path.lstrip('/')}"
        try:
            response = await self.client.get(
                url, headers={**self._headers, "Accept": "application/vnd.github.raw+json"}
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise PlatformError(f"Unable to read {path} from {repo}: {exc}") from exc
        try:
            return yaml.safe_load(response.text)
        except yaml.YAMLError as exc:
            raise PlatformError(f"Unable to parse {path} from {repo}: {exc}") from exc

    # PlatformQuery

    async def get_item(self, item: VoteItem) -> VoteItem | None:
        data = await self.graphql(_ITEM, {"id": item.id})
        node = data.get("node")
        if not node or node.get("__typename") not in _KINDS:
            return None
        return _vote_item(node, item.repository)

    async def list_reactions(self, item: VoteItem) -> list[PlatformReaction]:
        nodes = await self._paginate(_REACTIONS, {"id": item.id}, ("node", "reactions")) or []
        reactions: list[PlatformReaction] = []
        for node in nodes:
            user = _actor(node.get("user"))
            if user is None:
                continue
            content = ReactionContent.from_string(node.get("content"))
            reactions.append(
                PlatformReaction(
                    user=user,
                    content=content.value if content is not None else str(node.get("content", "")).lower(),
                    created_at=node["createdAt"],
                )
            )
        return reactions

    async def list_comments(self, item: VoteItem) -> list[PlatformComment]:
        nodes = await self._paginate(_COMMENTS, {"id": item.id}, ("node", "comments")) or []
        comments: list[PlatformComment] = []
        for node in nodes:
            author = _actor(node.get("author"))
            if author is None:
                continue
            comments.append(
                PlatformComment(
                    id=node["id"],
                    author=author,
                    body=node.get("body") or "",
                    created_at=node["createdAt"],
                    url=node.get("url") or "",
                )
            )
        return comments

    async def find_existing_bot_comment(self, item: VoteItem, comment_id: str) -> CommentRef | None:
        data = await self.graphql(_COMMENT_BY_ID, {"id": comment_id})
        node = data.get("node")
        if not node or "id" not in node:
            return None
        author = (node.get("author") or {}).get("login", "")
        if not is_bot_login(author, self.bot_login):
            logger.warning("[%s] Linked status comment %s is not owned by the bot", item.log_id, comment_id)
            return None
        return CommentRef(id=node["id"], url=node.get("url") or "", body=node.get("body") or "")

    async def list_repository_labels(self, repo: str, names: list[str]) -> set[str]:
        labels = await self._repository_labels(repo, refresh=True)
        return {name for name in names if name in labels}

    async def list_open_vote_items(self, repo: str, label: str) -> list[VoteItem]:
        query = f'repo:{repo} label:"{label}"'
        items: list[VoteItem] = []
        for search_type in ("ISSUE", "DISCUSSION"):
            nodes = await self._paginate(_SEARCH_ITEMS, {"query": query, "type": search_type}, ("search",)) or []
            items.extend(_vote_item(node, repo) for node in nodes if node.get("__typename") in _KINDS)
        return items

    # PlatformMutation

    async def upsert_comment(self, item: VoteItem, ref: CommentRef | None, body: str) -> CommentRef:
        discussion = item.kind == ItemKind.DISCUSSION
        if ref is None and discussion:
            data = await self.graphql(_ADD_DISCUSSION_COMMENT, {"discussionId": item.id, "body": body})
            node = _dig(data, ("addDiscussionComment", "comment"))
        elif ref is None:
            data = await self.graphql(_ADD_COMMENT, {"subjectId": item.id, "body": body})
            node = _dig(data, ("addComment", "commentEdge", "node"))
        elif discussion:
            data = await self.graphql(_UPDATE_DISCUSSION_COMMENT, {"commentId": ref.id, "body": body})
            node = _dig(data, ("updateDiscussionComment", "comment"))
        else:
            data = await self.graphql(_UPDATE_COMMENT, {"id": ref.id, "body": body})
            node = _dig(data, ("updateIssueComment", "issueComment"))
        if not node:
            raise PlatformError(f"[{item.log_id}] comment mutation returned no comment")
        return CommentRef(id=node["id"], url=node.get("url") or "", body=node.get("body") or body)

    async def set_item_body(self, item: VoteItem, body: str) -> None:
        await self.graphql(_UPDATE_BODY[item.kind], {"id": item.id, "body": body})

    async def add_label(self, item: VoteItem, name: str) -> None:
        label_ids = await self._label_ids_for(item.repository, [name])
        if label_ids:
            await self.graphql(_ADD_LABELS, {"id": item.id, "labelIds": label_ids})

    async def remove_labels(self, item: VoteItem, names: list[str]) -> None:
        label_ids = await self._label_ids_for(item.repository, names)
        if label_ids:
            await self.graphql(_REMOVE_LABELS, {"id": item.id, "labelIds": label_ids})

    async def add_bot_reaction(self, item: VoteItem, content: ReactionContent) -> None:
        await self.graphql(_ADD_REACTION, {"id": item.id, "content": content.graphql_name})

    async def remove_bot_reaction(self, item: VoteItem, content: ReactionContent) -> None:
        await self.graphql(_REMOVE_REACTION, {"id": item.id, "content": content.graphql_name})

    async def _repository_labels(self, repo: str, *, refresh: bool = False) -> dict[str, str]:
        if refresh or repo not in self._label_ids:
            owner, _, name = repo.partition("/")
            nodes = await self._paginate(_LABELS, {"owner": owner, "name": name}, ("repository", "labels"))
            if nodes is None:
                raise PlatformError(f"Repository {repo} not found")
            self._label_ids[repo] = {node["name"]: node["id"] for node in nodes}
        return self._label_ids[repo]

    async def _label_ids_for(self, repo: str, names: list[str]) -> list[str]:
        labels = await self._repository_labels(repo)
        missing = [name for name in names if name not in labels]
        if missing:
            logger.warning("Labels %s are not defined in %s", ", ".join(missing), repo)
        return [labels[name] for name in names if name in labels]


def _dig(data: dict[str, Any] | None, path: tuple[str, ...]) -> dict[str, Any] | None:
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current if isinstance(current, dict) else None


def _actor(node: dict[str, Any] | None) -> Actor | None:
    if not node or not node.get("login"):
        return None
    return Actor(login=node["login"], url=node.get("url") or "")


def _vote_item(node: dict[str, Any], repo: str) -> VoteItem:
    return VoteItem(
        id=node["id"],
        repository=repo,
        number=node["number"],
        url=node.get("url") or "",
        title=node.get("title") or "",
        body=node.get("body") or "",
        closed=bool(node.get("closed")),
        labels=frozenset(label["name"] for label in (node.get("labels") or {}).get("nodes") or [] if label),
        kind=_KINDS[node["__typename"]],
    )
