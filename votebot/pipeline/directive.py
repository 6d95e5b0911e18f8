from __future__ import annotations

import re

from votebot.models.directive import CountingMethod, VoteDirective
from votebot.models.item import ItemKind, ReactionContent
from votebot.models.membership import Membership
from votebot.models.threshold import Threshold

GROUP_PATTERN = re.compile(r"voting group[^@]+@(\S+)", re.IGNORECASE)
VOTE_PATTERN = re.compile(r"<!--vote(.*?)-->", re.IGNORECASE)

_QUOTED = r"['\"]([^'\"]*)['\"]"
APPROVE_PATTERN = re.compile(r"approve=" + _QUOTED, re.IGNORECASE)
OK_PATTERN = re.compile(r"ok=" + _QUOTED, re.IGNORECASE)
REVISE_PATTERN = re.compile(r"revise=" + _QUOTED, re.IGNORECASE)
THRESHOLD_PATTERN = re.compile(r"threshold=" + _QUOTED, re.IGNORECASE)

DEFAULT_APPROVE = (ReactionContent.PLUS_ONE,)
DEFAULT_OK = (ReactionContent.EYES,)
DEFAULT_REVISE = (ReactionContent.MINUS_ONE,)


def find_group(body: str) -> str | None:
    match = GROUP_PATTERN.search(body or "")
    return match.group(1) if match else None


def parse_directive(
    body: str,
    *,
    item_kind: ItemKind = ItemKind.ISSUE,
    default_threshold: Threshold = Threshold.ALL,
) -> VoteDirective:
    """Read the voting group and counting directive embedded in an item body."""
    body = body or ""
    is_pull_request = item_kind == ItemKind.PULL_REQUEST
    group = find_group(body)

    vote_match = VOTE_PATTERN.search(body)
    definition = vote_match.group(1).strip().lower() if vote_match else ""
    if not definition and is_pull_request:
        definition = "::marthas"

    if not definition:
        return VoteDirective(
            group=group,
            threshold=default_threshold,
            is_pull_request=is_pull_request,
        )

    threshold_match = THRESHOLD_PATTERN.search(definition)
    threshold = Threshold.from_string(threshold_match.group(1)) if threshold_match else default_threshold

    if definition.startswith("::marthas"):
        unknown: list[str] = []
        approve = _reactions_for(APPROVE_PATTERN, definition, DEFAULT_APPROVE, unknown)
        ok = _reactions_for(OK_PATTERN, definition, DEFAULT_OK, unknown)
        revise = _reactions_for(REVISE_PATTERN, definition, DEFAULT_REVISE, unknown)
        return VoteDirective(
            group=group,
            method=CountingMethod.MARTHAS,
            approve=approve,
            ok=ok,
            revise=revise,
            unknown_reactions=tuple(unknown),
            threshold=threshold,
            is_pull_request=is_pull_request,
        )

    method = CountingMethod.UNDEFINED
    if definition.startswith("::manual"):
        method = CountingMethod.MANUAL_COMMENTS if "comments" in definition else CountingMethod.MANUAL_REACTIONS
    return VoteDirective(
        group=group,
        method=method,
        threshold=threshold,
        is_pull_request=is_pull_request,
    )


def _reactions_for(
    pattern: re.Pattern[str],
    definition: str,
    default: tuple[ReactionContent, ...],
    unknown: list[str],
) -> tuple[ReactionContent, ...]:
    match = pattern.search(definition)
    if match is None:
        return default
    reactions: list[ReactionContent] = []
    for token in re.split(r"\s*,\s*", match.group(1).strip()):
        name = token.replace(":", "").strip()
        if not name:
            continue
        content = ReactionContent.from_string(name)
        if content is None:
            unknown.append(name)
        elif content not in reactions:
            reactions.append(content)
    return tuple(reactions)


VALID_TEAM_TIP = (
    "\r\n"
    "> [!TIP]\r\n"
    "> Item description should contain text that matches the following (case-insensitive):  \r\n"
    "> `voting group[^@]+@([^ ]+)`\r\n"
    ">\r\n"
    "> For example:\r\n"
    ">\r\n"
    "> ```md\r\n"
    "> ## Voting group\r\n"
    "> @commonhaus/test-quorum-default\r\n"
    "> ```\r\n"
    ">\r\n"
    "> Or:\r\n"
    ">\r\n"
    "> ```md\r\n"
    "> - voting group: @commonhaus/test-quorum-default\r\n"
    "> ```\r\n"
)

VALID_REACTIONS_TIP = (
    "\r\n"
    "> [!TIP]\r\n"
    "> Item description should contain an HTML comment that describes how votes should be counted.\r\n"
    ">\r\n"
    "> Some examples:\r\n"
    ">\r\n"
    "> ```md\r\n"
    "> <!--vote::manual -->\r\n"
    "> <!--vote::manual comments -->\r\n"
    '> <!--vote::marthas approve="+1" ok="eyes" revise="-1" -->\r\n'
    '> <!--vote::marthas approve="+1, rocket, hooray" ok="eyes" revise="-1, confused" -->\r\n'
    "> ```\r\n"
    ">\r\n"
    "> - **manual**: The bot will group votes by reaction, and count votes of the required group\r\n"
    "> - **manual with comments**: The bot will count comments by members of the required group\r\n"
    "> - **marthas**: The bot will group votes (approve, ok, revise), and count votes of the required group\r\n"
    ">\r\n"
    "> Valid values: +1, -1, laugh, confused, heart, hooray, rocket, eyes\r\n"
    "> aliases: [+1, plus_one, thumbs_up], [-1, minus_one, thumbs_down]\r\n"
)


def error_content(directive: VoteDirective, membership: Membership | None) -> str:
    """Remediation message posted in place of a status comment."""
    invalid_group = directive.invalid_group(membership)
    return (
        "Configuration for item is invalid:\r\n\r\n"
        f"- Team for specified group ({directive.group}) must exist ({membership is not None})\r\n"
        f"{VALID_TEAM_TIP if invalid_group else ''}\r\n"
        f"{explain_vote_counting(directive)}\r\n"
        f"{VALID_REACTIONS_TIP if directive.invalid_reactions else ''}\r\n"
    )


def explain_vote_counting(directive: VoteDirective) -> str:
    if directive.method == CountingMethod.MARTHAS:
        return _show_reaction_groups(directive)
    if directive.method == CountingMethod.MANUAL_REACTIONS:
        return "- Counting reactions manually"
    if directive.method == CountingMethod.MANUAL_COMMENTS:
        return "- Counting comments"
    return "- No valid vote counting method found"


def _show_reaction_groups(directive: VoteDirective) -> str:
    pr = directive.is_pull_request
    description = (
        "Counting non-empty valid reactions and review responses in the following categories:"
        if pr
        else "Counting non-empty valid reactions in the following categories:"
    )
    lines = [
        f"\r\n- {description}",
        f"- approve: {_show_reactions(directive.approve)}{', PR review approved' if pr else ''}",
        f"- ok: {_show_reactions(directive.ok)}{', PR review closed with comments' if pr else ''}",
        f"- revise: {_show_reactions(directive.revise)}{', PR review requires changes' if pr else ''}",
    ]
    if directive.unknown_reactions:
        lines.append(f"- unrecognized: {', '.join(directive.unknown_reactions)}")
    return "\r\n".join(lines)


def _show_reactions(reactions: tuple[ReactionContent, ...]) -> str:
    return ", ".join(content.value for content in reactions) or "(none)"
