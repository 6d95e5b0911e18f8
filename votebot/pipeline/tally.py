from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field

from votebot.models.directive import CountingMethod, VoteDirective
from votebot.models.item import ReactionContent
from votebot.models.membership import AlternateMap, Membership
from votebot.models.signal import CommentSignal, ReactionSignal, Signal
from votebot.models.tally import COMMENT, IGNORED, CategoryTally, ManualResult, VoteRecord, VoteTally
from votebot.models.threshold import Threshold

DATA_MARKER = "vote::data"
_MARTHAS_CATEGORIES = ("approve", "ok", "revise")


@dataclass(slots=True)
class _Bucket:
    name: str
    reactions: list[ReactionContent] = field(default_factory=list)
    team: dict[str, VoteRecord] = field(default_factory=dict)
    others: dict[str, VoteRecord] = field(default_factory=dict)

    def add(self, record: VoteRecord, team_logins: frozenset[str], content: ReactionContent | None = None) -> None:
        if content is not None and content not in self.reactions:
            self.reactions.append(content)
        target = self.team if record.login in team_logins else self.others
        target.setdefault(record.login, record)

    def freeze(self) -> CategoryTally:
        return CategoryTally(
            name=self.name,
            reactions=tuple(c.emoji for c in sorted(self.reactions, key=lambda c: c.sort_order)),
            team=tuple(self.team[login] for login in sorted(self.team)),
            others=tuple(self.others[login] for login in sorted(self.others)),
        )


def tally_votes(
    directive: VoteDirective,
    membership: Membership | None,
    signals: Sequence[Signal],
    *,
    alternates: AlternateMap | None = None,
    manual_results: Sequence[ManualResult] = (),
) -> VoteTally:
    """Count vote signals for one item. Pure: no I/O, inputs are never modified."""
    team_logins = membership.logins if membership is not None else frozenset()
    group_size = len(team_logins)
    buckets: dict[str, _Bucket] = {}
    duplicates: list[VoteRecord] = []
    seen: set[str] = set()

    if directive.method == CountingMethod.MARTHAS:
        for name in _MARTHAS_CATEGORIES:
            buckets[name] = _Bucket(name)

    if directive.counts_comments:
        bucket = buckets.setdefault(COMMENT, _Bucket(COMMENT))
        comments = [s for s in signals if isinstance(s, CommentSignal)]
        for signal in sorted(comments, key=lambda s: s.created_at):
            if signal.actor.login in seen:
                continue
            seen.add(signal.actor.login)
            bucket.add(_comment_record(signal), team_logins)
    else:
        reactions = [s for s in signals if isinstance(s, ReactionSignal)]
        # most recent first; priority breaks ties between simultaneous reactions
        ordered = sorted(reactions, key=lambda s: s.content.sort_order)
        ordered.sort(key=lambda s: s.created_at, reverse=True)
        for signal in ordered:
            name = _category_for(directive, signal.content)
            bucket = buckets.setdefault(name, _Bucket(name))
            record = _reaction_record(signal)
            if name == IGNORED:
                bucket.add(record, team_logins, signal.content)
            elif signal.actor.login in seen:
                duplicates.append(record)
            else:
                seen.add(signal.actor.login)
                bucket.add(record, team_logins, signal.content)

    counted = [b for b in buckets.values() if b.name != IGNORED]
    voted = {login for b in counted for login in b.team}
    if alternates and membership is not None and alternates.group == membership.handle:
        voted |= _promote_alternates(counted, team_logins - voted, alternates)

    missing = tuple(
        sorted((m for m in membership.members if m.login not in voted), key=lambda m: m.login)
        if membership is not None
        else ()
    )

    categories = tuple(b.freeze() for b in _ordered_buckets(directive, buckets))
    counted_categories = [c for c in categories if c.name != IGNORED]
    ignored = next((c for c in categories if c.name == IGNORED), None)
    group_votes = sum(c.team_total for c in counted_categories)
    counted_votes = sum(c.total for c in counted_categories)
    dropped_votes = len(duplicates) + (ignored.total if ignored is not None else 0)

    manual_result = max(manual_results, key=lambda r: r.created_at) if manual_results else None

    return VoteTally(
        method=directive.method,
        group=directive.group,
        threshold=directive.threshold,
        group_size=group_size,
        group_votes=group_votes,
        counted_votes=counted_votes,
        dropped_votes=dropped_votes,
        categories=categories,
        duplicates=tuple(sorted(duplicates, key=lambda r: (r.login, r.created_at))),
        other_votes=tuple(r for c in counted_categories for r in c.others),
        missing_group_actors=missing,
        has_quorum=_has_quorum(directive.threshold, group_size, group_votes),
        is_done=manual_result is not None,
        manual_result=manual_result,
        is_pull_request=directive.is_pull_request,
    )


def _has_quorum(threshold: Threshold, group_size: int, group_votes: int) -> bool:
    if group_size == 0:
        return threshold == Threshold.ALL
    return threshold.has_quorum(group_size, group_votes)


def _category_for(directive: VoteDirective, content: ReactionContent) -> str:
    if directive.method != CountingMethod.MARTHAS:
        return content.emoji
    if content in directive.approve:
        return "approve"
    if content in directive.ok:
        return "ok"
    if content in directive.revise:
        return "revise"
    return IGNORED


def _ordered_buckets(directive: VoteDirective, buckets: dict[str, _Bucket]) -> list[_Bucket]:
    if directive.method == CountingMethod.MARTHAS:
        names = [*_MARTHAS_CATEGORIES, IGNORED]
        return [buckets[name] for name in names if name in buckets]
    if directive.counts_comments:
        return list(buckets.values())
    return sorted(buckets.values(), key=lambda b: b.reactions[0].sort_order if b.reactions else len(ReactionContent))


def _promote_alternates(counted: list[_Bucket], missing: frozenset[str], alternates: AlternateMap) -> set[str]:
    """Move delegate votes into the team slot of absent primaries."""
    promoted: set[str] = set()
    used: set[str] = set()
    for primary in sorted(missing):
        delegate = alternates.delegate_for(primary)
        if delegate is None or delegate.login in used:
            continue
        for bucket in counted:
            record = bucket.others.pop(delegate.login, None)
            if record is None:
                continue
            bucket.team[delegate.login] = record.model_copy(update={"alternate": True, "on_behalf_of": primary})
            promoted.add(primary)
            used.add(delegate.login)
            break
    return promoted


def _reaction_record(signal: ReactionSignal) -> VoteRecord:
    return VoteRecord(
        login=signal.actor.login,
        url=signal.actor.url,
        created_at=signal.created_at,
        reaction=signal.emoji,
    )


def _comment_record(signal: CommentSignal) -> VoteRecord:
    return VoteRecord(login=signal.actor.login, url=signal.actor.url, created_at=signal.created_at)


# Rendering. GitHub markdown prefers \r\n line endings.


def render_markdown(tally: VoteTally, *, is_closed: bool = False) -> str:
    markdown = ""
    result = tally.manual_result
    if result is not None:
        quoted = result.body.replace("\r\n", "\r\n> ")
        markdown += (
            f"This vote has been [closed]({result.url}) by [{result.author.login}]({result.author.url}):\r\n\r\n"
            f"> {quoted}\r\n\r\n---\r\n\r\n"
        )
    elif is_closed:
        markdown += "\r\n\r\n> [!NOTE]\r\n> This item has been closed.\r\n\r\n---\r\n\r\n"
    return markdown + "\r\n" + _summarize(tally)


def render_status_comment(tally: VoteTally, *, is_closed: bool = False) -> str:
    """Status comment body: the markdown summary plus a hidden data marker."""
    data = json.dumps(tally.snapshot(), sort_keys=True, ensure_ascii=False)
    return f"{render_markdown(tally, is_closed=is_closed)}\r\n<!-- {DATA_MARKER} {data} -->"


def _summarize(tally: VoteTally) -> str:
    uses_comments = tally.method == CountingMethod.MANUAL_COMMENTS
    if tally.group_size == 0:
        return f"\r\nNo votes possible: voting group @{tally.group} has no members."
    if tally.counted_votes == 0:
        return f"\r\nNo votes (non-bot {'comments' if uses_comments else 'reactions'}) found on this item."

    result = (
        f"\r\n{'✅ ' if tally.has_quorum else '🗳️ '}{tally.group_votes} of {tally.group_size} members of "
        f"@{tally.group} have voted ({'comment' if uses_comments else 'reaction'}"
        f"{' or review' if tally.is_pull_request else ''}, quorum={tally.threshold.label})."
    )
    if uses_comments:
        comments = tally.category(COMMENT)
        result += "\r\nThe following members have commented:  \r\n" + _actors(comments.team if comments else ())
    else:
        rows = "\r\n".join(
            f"| {c.name} | {c.total} | {c.team_total} | {_actors(c.team)} |" for c in tally.counted_categories
        )
        result += (
            "\r\n| Reaction | Total | Team | Voting members |\r\n| --- | --- | --- | --- |\r\n"
            f"{rows}\r\n"
            f"{_record_list('Additional input (🙏 🥰 🙌):', tally.other_votes)}"
            f"{_record_list('The following votes were not counted (duplicates):', tally.duplicates)}"
            f"{_ignored(tally)}"
        )
    if not tally.is_done:
        result += (
            "\r\n\r\nA vote manager comment containing `vote::result` will close the vote.\r\n"
            "\r\n\r\n[^alt]: Alternate representative\r\n"
        )
    return result


def _actors(records: Sequence[VoteRecord]) -> str:
    return ", ".join(f"[{r.login}]({r.url}){'[^alt]' if r.alternate else ''}" for r in records)


def _record_list(title: str, records: Sequence[VoteRecord]) -> str:
    if not records:
        return ""
    listed = ", ".join(f"[{r.login}]({r.url})({r.reaction})" for r in records)
    return f"\r\n{title}\r\n{listed}\r\n"


def _ignored(tally: VoteTally) -> str:
    ignored = tally.category(IGNORED)
    if ignored is None or ignored.total == 0:
        return ""
    return f"\r\nThe following reactions were not counted:\r\n{', '.join(ignored.reactions)}\r\n"
