"""Unit tests for poll tallies and the one-vote rule."""

from __future__ import annotations

from harambee.communities.content_service import has_voted, tally
from harambee.db.models import Poll, PollOption, PollVote


def _poll() -> Poll:
    red = PollOption(id=1, position=0, text="Red")
    blue = PollOption(id=2, position=1, text="Blue")
    return Poll(question="Pick color", options=[red, blue], votes=[])


def test_tally_in_option_order() -> None:
    poll = _poll()
    poll.votes.extend([PollVote(option_id=2, user_id=10), PollVote(option_id=1, user_id=11)])
    assert tally(poll) == [[11], [10]]


def test_has_voted_scans_every_option() -> None:
    poll = _poll()
    poll.votes.append(PollVote(option_id=1, user_id=10))
    assert has_voted(poll, 10)
    assert not has_voted(poll, 11)


def test_empty_poll() -> None:
    assert tally(_poll()) == [[], []]
