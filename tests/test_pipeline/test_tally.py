from __future__ import annotations

import json

from tests.fixtures.platform_fakes import MARTHAS_BODY, actor, at
from votebot.models.directive import CountingMethod, VoteDirective
from votebot.models.item import ItemKind, ReactionContent
from votebot.models.membership import AlternateMap, Membership
from votebot.models.signal import CommentSignal, ReactionSignal
from votebot.models.tally import ManualResult
from votebot.models.threshold import Threshold
from votebot.pipeline.directive import parse_directive
from votebot.pipeline.tally import DATA_MARKER, render_markdown, render_status_comment, tally_votes

GROUP = Membership(
    handle="org/quorum",
    members=frozenset(actor(login) for login in ["alice", "bob", "carol", "dave", "erin"]),
)


def _marthas(threshold: Threshold = Threshold.MAJORITY) -> VoteDirective:
    return parse_directive(MARTHAS_BODY, default_threshold=threshold)


def _reaction(login: str, content: str, minutes: int = 0) -> ReactionSignal:
    parsed = ReactionContent.from_string(content)
    assert parsed is not None
    return ReactionSignal(actor=actor(login), content=parsed, created_at=at(minutes))


def _comment(login: str, minutes: int = 0, body: str = "I agree") -> CommentSignal:
    return CommentSignal(actor=actor(login), created_at=at(minutes), body=body)


# --- end-to-end marthas scenario ---

def test_marthas_scenario_reaches_majority() -> None:
    signals = [
        _reaction("alice", "+1"),
        _reaction("bob", "+1"),
        _reaction("carol", "+1"),
        _reaction("dave", "eyes"),
    ]
    tally = tally_votes(_marthas(), GROUP, signals)

    assert tally.category("approve").total == 3
    assert tally.category("ok").total == 1
    assert tally.category("revise").total == 0
    assert tally.group_votes == 4
    assert tally.counted_votes == 4
    assert tally.has_quorum
    assert not tally.is_done
    assert [a.login for a in tally.missing_group_actors] == ["erin"]

    markdown = render_markdown(tally)
    assert "4 of 5 members" in markdown
    assert "✅ 4 of 5 members of @org/quorum have voted (reaction, quorum=majority)." in markdown
    assert "| Reaction | Total | Team | Voting members |" in markdown
    assert "| approve | 3 | 3 | [alice](https://github.com/alice), [bob]" in markdown
    assert "A vote manager comment containing `vote::result` will close the vote." in markdown


def test_quorum_boundary() -> None:
    two = tally_votes(_marthas(), GROUP, [_reaction("alice", "+1"), _reaction("bob", "-1")])
    three = tally_votes(
        _marthas(), GROUP, [_reaction("alice", "+1"), _reaction("bob", "-1"), _reaction("carol", "eyes")]
    )
    assert not two.has_quorum
    assert three.has_quorum
    assert "🗳️ 2 of 5 members" in render_markdown(two)


# --- duplicates and ordering ---

def test_most_recent_reaction_wins() -> None:
    tally = tally_votes(_marthas(), GROUP, [_reaction("alice", "-1", 1), _reaction("alice", "+1", 5)])
    assert [r.login for r in tally.category("approve").team] == ["alice"]
    assert tally.category("revise").total == 0
    assert [(d.login, d.reaction) for d in tally.duplicates] == [("alice", "👎")]
    assert tally.dropped_votes == 1
    assert tally.group_votes == 1


def test_simultaneous_reactions_break_ties_by_priority() -> None:
    tally = tally_votes(_marthas(), GROUP, [_reaction("alice", "-1", 3), _reaction("alice", "+1", 3)])
    assert tally.category("approve").total == 1
    assert [d.reaction for d in tally.duplicates] == ["👎"]


def test_ignored_reactions_do_not_count_or_consume_votes() -> None:
    tally = tally_votes(
        _marthas(),
        GROUP,
        [_reaction("alice", "heart", 10), _reaction("alice", "+1", 1), _reaction("bob", "laugh", 1)],
    )
    assert tally.category("approve").total == 1
    assert tally.ignored_votes == 2
    assert tally.dropped_votes == 2
    assert tally.group_votes == 1
    assert {a.login for a in tally.missing_group_actors} == {"bob", "carol", "dave", "erin"}
    markdown = render_markdown(tally)
    assert "The following reactions were not counted:\r\n❤️, 😄" in markdown


def test_non_members_are_additional_input() -> None:
    tally = tally_votes(_marthas(), GROUP, [_reaction("alice", "+1"), _reaction("outsider", "+1")])
    approve = tally.category("approve")
    assert approve.total == 2
    assert approve.team_total == 1
    assert tally.group_votes == 1
    assert tally.counted_votes == 2
    assert [r.login for r in tally.other_votes] == ["outsider"]
    assert "Additional input (🙏 🥰 🙌):\r\n[outsider](https://github.com/outsider)(👍)" in render_markdown(tally)


def test_each_actor_counted_at_most_once() -> None:
    signals = [_reaction(login, content, minute) for minute, (login, content) in enumerate(
        [("alice", "+1"), ("alice", "eyes"), ("bob", "-1"), ("alice", "-1"), ("bob", "+1")]
    )]
    tally = tally_votes(_marthas(), GROUP, signals)
    counted = [r.login for c in tally.counted_categories for r in (*c.team, *c.others)]
    assert sorted(counted) == ["alice", "bob"]
    assert len(tally.duplicates) == 3


# --- delegates ---

def test_delegate_fills_absent_primary() -> None:
    alternates = AlternateMap(group="org/quorum", delegates={"erin": actor("zoe")})
    tally = tally_votes(
        _marthas(),
        GROUP,
        [_reaction("alice", "+1"), _reaction("zoe", "-1")],
        alternates=alternates,
    )
    revise = tally.category("revise")
    assert [(r.login, r.alternate, r.on_behalf_of) for r in revise.team] == [("zoe", True, "erin")]
    assert revise.others == ()
    assert tally.group_votes == 2
    assert "erin" not in {a.login for a in tally.missing_group_actors}
    assert tally.other_votes == ()
    assert "[zoe](https://github.com/zoe)[^alt]" in render_markdown(tally)


def test_delegate_ignored_when_primary_voted() -> None:
    alternates = AlternateMap(group="org/quorum", delegates={"erin": actor("zoe")})
    tally = tally_votes(
        _marthas(),
        GROUP,
        [_reaction("erin", "+1"), _reaction("zoe", "-1")],
        alternates=alternates,
    )
    assert tally.category("revise").team == ()
    assert [r.login for r in tally.other_votes] == ["zoe"]
    assert tally.group_votes == 1


def test_alternates_for_other_group_are_not_applied() -> None:
    alternates = AlternateMap(group="org/other", delegates={"erin": actor("zoe")})
    tally = tally_votes(_marthas(), GROUP, [_reaction("zoe", "+1")], alternates=alternates)
    assert tally.group_votes == 0


# --- manual modes ---

def test_manual_reactions_group_by_emoji() -> None:
    directive = parse_directive("voting group: @org/quorum\n<!--vote::manual -->")
    tally = tally_votes(
        directive,
        GROUP,
        [_reaction("alice", "rocket"), _reaction("bob", "heart"), _reaction("carol", "rocket")],
    )
    assert [c.name for c in tally.categories] == ["🚀", "❤️"]
    assert tally.category("🚀").total == 2
    assert tally.group_votes == 3
    assert tally.method is CountingMethod.MANUAL_REACTIONS


def test_manual_comments_count_first_comment_per_actor() -> None:
    directive = parse_directive("voting group: @org/quorum\n<!--vote::manual comments -->")
    tally = tally_votes(
        directive,
        GROUP,
        [_comment("alice", 1), _comment("alice", 2), _comment("bob", 3), _comment("guest", 4)],
    )
    comments = tally.category("comment")
    assert [r.login for r in comments.team] == ["alice", "bob"]
    assert tally.duplicates == ()
    assert tally.dropped_votes == 0
    assert tally.group_votes == 2
    markdown = render_markdown(tally)
    assert "have voted (comment, quorum=all)" in markdown
    assert "The following members have commented:  \r\n[alice](https://github.com/alice), [bob]" in markdown


def test_pull_request_summary_mentions_reviews() -> None:
    directive = parse_directive("voting group: @org/quorum", item_kind=ItemKind.PULL_REQUEST)
    tally = tally_votes(directive, GROUP, [_reaction("alice", "+1")])
    assert "(reaction or review, quorum=all)" in render_markdown(tally)


# --- manual close ---

def test_manual_result_closes_vote() -> None:
    directive = parse_directive("no directive at all")
    results = [
        ManualResult(author=actor("boss"), created_at=at(1), body="Rejected", url="u1"),
        ManualResult(author=actor("boss"), created_at=at(9), body="Approved\r\nunanimously", url="u2"),
    ]
    tally = tally_votes(directive, None, [], manual_results=results)
    assert tally.is_done
    assert tally.manual_result is not None and tally.manual_result.url == "u2"
    markdown = render_markdown(tally)
    assert markdown.startswith(
        "This vote has been [closed](u2) by [boss](https://github.com/boss):\r\n\r\n> Approved\r\n> unanimously"
    )
    assert "will close the vote" not in markdown


def test_closed_item_without_result() -> None:
    tally = tally_votes(_marthas(), GROUP, [_reaction("alice", "+1")])
    assert "> [!NOTE]\r\n> This item has been closed." in render_markdown(tally, is_closed=True)


# --- edge cases ---

def test_no_votes() -> None:
    tally = tally_votes(_marthas(), GROUP, [])
    assert "No votes (non-bot reactions) found on this item." in render_markdown(tally)
    assert not tally.has_quorum
    assert len(tally.missing_group_actors) == 5


def test_zero_size_group_does_not_raise() -> None:
    empty = Membership(handle="org/empty")
    majority = tally_votes(_marthas(), empty, [_reaction("alice", "+1")])
    unanimous = tally_votes(_marthas(Threshold.ALL), empty, [])
    assert majority.group_size == 0
    assert not majority.has_quorum
    assert unanimous.has_quorum
    assert "No votes possible" in render_markdown(majority)


def test_tally_is_idempotent() -> None:
    signals = [_reaction("alice", "+1", 2), _reaction("bob", "eyes", 1), _reaction("alice", "-1", 1)]
    first = tally_votes(_marthas(), GROUP, signals)
    second = tally_votes(_marthas(), GROUP, list(reversed(signals)))
    assert render_status_comment(first) == render_status_comment(second)
    assert first.snapshot() == second.snapshot()


def test_status_comment_embeds_snapshot() -> None:
    tally = tally_votes(_marthas(), GROUP, [_reaction("alice", "+1")])
    body = render_status_comment(tally)
    prefix = f"\r\n<!-- {DATA_MARKER} "
    assert prefix in body
    data = json.loads(body.split(prefix, 1)[1].removesuffix(" -->"))
    assert data["voteType"] == "marthas"
    assert data["groupSize"] == 5
    assert data["groupVotes"] == 1
    assert data["categories"]["approve"]["team"][0]["login"] == "alice"
    assert data["manualCloseComments"] is None
