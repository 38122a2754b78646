"""Tests for the snapshot stores."""
import json
import logging
from datetime import datetime, timezone

from pollsync.models import (
    Poll,
    PollOption,
    PresentationState,
    PresentationStatus,
    SimulationState,
    Vote,
)
from pollsync.persistence import FileSnapshotStore, MemorySnapshotStore

T0 = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def sample_state() -> SimulationState:
    return SimulationState(
        polls=[Poll(poll_id=1, question="Pick a color", is_active=True, created_at=T0)],
        options=[
            PollOption(option_id=1, poll_id=1, text="Red"),
            PollOption(option_id=2, poll_id=1, text="Blue"),
        ],
        votes=[Vote(vote_id=1, poll_id=1, user_id="a1b2c3d4", option_id=2, voted_at=T0)],
        presentation_state=PresentationState(current_poll_id=1, state=PresentationStatus.VOTING),
        next_poll_id=2,
        next_option_id=3,
        next_vote_id=2,
    )


class TestFileSnapshotStore:

    def test_round_trip(self, tmp_path):
        persistence = FileSnapshotStore(str(tmp_path))
        assert persistence.save(sample_state()) is True
        assert persistence.load() == sample_state()

    def test_record_layout(self, tmp_path):
        persistence = FileSnapshotStore(str(tmp_path), key="voting_app_state")
        persistence.save(sample_state())
        record = json.loads((tmp_path / "voting_app_state.json").read_text())
        assert set(record) == {
            "polls",
            "options",
            "votes",
            "presentationState",
            "nextPollId",
            "nextOptionId",
            "nextVoteId",
        }
        assert record["presentationState"] == {"id": 0, "current_poll_id": 1, "state": "voting"}

    def test_missing_record_is_absent(self, tmp_path):
        assert FileSnapshotStore(str(tmp_path / "nowhere")).load() is None

    def test_corrupt_record_is_logged_and_absent(self, tmp_path, caplog):
        persistence = FileSnapshotStore(str(tmp_path))
        persistence.path.write_text("{not json")
        with caplog.at_level(logging.ERROR, logger="pollsync.persistence"):
            assert persistence.load() is None
        assert "load from" in caplog.text

    def test_unwritable_location_is_logged(self, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        persistence = FileSnapshotStore(str(blocker / "data"))
        with caplog.at_level(logging.ERROR, logger="pollsync.persistence"):
            assert persistence.save(sample_state()) is False
        assert "save to" in caplog.text

    def test_clear(self, tmp_path):
        persistence = FileSnapshotStore(str(tmp_path))
        persistence.save(sample_state())
        persistence.clear()
        assert persistence.load() is None


class TestMemorySnapshotStore:

    def test_round_trip(self):
        persistence = MemorySnapshotStore()
        assert persistence.load() is None
        persistence.save(sample_state())
        assert persistence.load() == sample_state()

    def test_partial_record_falls_back_to_defaults(self):
        persistence = MemorySnapshotStore()
        persistence.record = json.dumps({"polls": [], "nextPollId": 7})
        state = persistence.load()
        assert state.next_poll_id == 7
        assert state.presentation_state.state == PresentationStatus.WAITING
