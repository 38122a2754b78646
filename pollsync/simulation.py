# local stand-in for the remote authority's reducers (fallback mode)
import logging
from typing import List, Optional

from .broadcast import LocalBroadcastChannel
from .errors import UnknownReducer
from .models import (
    ActivatePoll,
    Command,
    CreatePoll,
    EndSession,
    JoinSession,
    Participant,
    Poll,
    PollOption,
    PresentationStatus,
    Role,
    Row,
    ShowResults,
    SimulationState,
    SubmitVote,
    TableName,
    Vote,
    utcnow,
)
from .state import TableStore

logger = logging.getLogger(__name__)


class SimulationEngine:
    """
    Re-derives every authoritative mutation locally.

    Each reducer writes its tables into the store silently, saves the full
    state, publishes the touched tables to sibling instances and only then
    notifies local observers. Calls are applied literally: there is no
    check that they arrive in a sensible order.
    """

    def __init__(
        self,
        store: TableStore,
        persistence,
        broadcaster: Optional[LocalBroadcastChannel] = None,
        participant_id: str = "",
    ):
        self.store = store
        self.persistence = persistence
        self.broadcaster = broadcaster
        self.participant_id = participant_id
        self.next_poll_id = 1
        self.next_option_id = 1
        self.next_vote_id = 1

    # ----------- lifecycle -----------

    def start(self) -> None:
        try:
            state = self.persistence.load()
        except Exception:
            logger.exception("loading simulation state failed, starting empty")
            state = None
        self.seed(state or SimulationState())
        if self.broadcaster is not None:
            self.broadcaster.on_receive(self._on_broadcast)

    def stop(self) -> None:
        if self.broadcaster is not None:
            self.broadcaster.close()

    def seed(self, state: SimulationState) -> None:
        self.next_poll_id = state.next_poll_id
        self.next_option_id = state.next_option_id
        self.next_vote_id = state.next_vote_id
        tables = {
            TableName.POLLS: state.polls,
            TableName.OPTIONS: state.options,
            TableName.VOTES: state.votes,
            TableName.PRESENTATION: [state.presentation_state],
        }
        for table, rows in tables.items():
            self._observe_ids(table, rows)
            self.store.replace_table(table, rows)

    def snapshot(self) -> SimulationState:
        return SimulationState(
            polls=self.store.get_table(TableName.POLLS),
            options=self.store.get_table(TableName.OPTIONS),
            votes=self.store.get_table(TableName.VOTES),
            presentation_state=self.store.presentation_state(),
            next_poll_id=self.next_poll_id,
            next_option_id=self.next_option_id,
            next_vote_id=self.next_vote_id,
        )

    # ----------- dispatch -----------

    def apply(self, command: Command) -> Optional[int]:
        if isinstance(command, JoinSession):
            return self.join_session(command.session_id, command.role)
        if isinstance(command, CreatePoll):
            return self.create_poll(command.question, command.options)
        if isinstance(command, ActivatePoll):
            return self.activate_poll(command.poll_id)
        if isinstance(command, SubmitVote):
            return self.submit_vote(command.poll_id, command.option_id)
        if isinstance(command, ShowResults):
            return self.show_results(command.poll_id)
        if isinstance(command, EndSession):
            return self.end_session()
        raise UnknownReducer(getattr(command, "kind", command))

    # ----------- reducers -----------

    def join_session(self, session_id: str, role: Role) -> None:
        users = [u for u in self.store.get_table(TableName.USERS) if u.user_id != self.participant_id]
        users.append(
            Participant(
                user_id=self.participant_id,
                session_id=session_id,
                role=Role(role),
                connected_at=utcnow(),
            )
        )
        self.store.replace_table(TableName.USERS, users, notify=False)
        self._commit(TableName.USERS)

    def create_poll(self, question: str, option_texts: List[str]) -> int:
        poll_id = self.next_poll_id
        self.next_poll_id += 1

        polls = self.store.get_table(TableName.POLLS)
        polls.append(Poll(poll_id=poll_id, question=question, is_active=False, created_at=utcnow()))

        options = self.store.get_table(TableName.OPTIONS)
        for text in option_texts:
            options.append(PollOption(option_id=self.next_option_id, poll_id=poll_id, text=text))
            self.next_option_id += 1

        self.store.replace_table(TableName.POLLS, polls, notify=False)
        self.store.replace_table(TableName.OPTIONS, options, notify=False)
        self._commit(TableName.POLLS, TableName.OPTIONS)
        return poll_id

    def activate_poll(self, poll_id: int) -> None:
        # an unknown poll_id leaves no poll active
        polls = [
            p.model_copy(update={"is_active": p.poll_id == poll_id})
            for p in self.store.get_table(TableName.POLLS)
        ]
        presentation = self.store.presentation_state().model_copy(
            update={"current_poll_id": poll_id, "state": PresentationStatus.VOTING}
        )
        self.store.replace_table(TableName.POLLS, polls, notify=False)
        self.store.replace_table(TableName.PRESENTATION, [presentation], notify=False)
        self._commit(TableName.POLLS, TableName.PRESENTATION)

    def submit_vote(self, poll_id: int, option_id: int) -> int:
        votes = self.store.get_table(TableName.VOTES)
        existing = next(
            (v for v in votes if v.poll_id == poll_id and v.user_id == self.participant_id),
            None,
        )
        if existing is not None:
            # vote_id and voted_at stay those of the first vote
            existing.option_id = option_id
            vote_id = existing.vote_id
        else:
            vote_id = self.next_vote_id
            self.next_vote_id += 1
            votes.append(
                Vote(
                    vote_id=vote_id,
                    poll_id=poll_id,
                    user_id=self.participant_id,
                    option_id=option_id,
                    voted_at=utcnow(),
                )
            )
        self.store.replace_table(TableName.VOTES, votes, notify=False)
        self._commit(TableName.VOTES)
        return vote_id

    def show_results(self, poll_id: Optional[int] = None) -> None:
        current = self.store.presentation_state()
        target = current.current_poll_id if poll_id is None else poll_id
        presentation = current.model_copy(
            update={"current_poll_id": target, "state": PresentationStatus.RESULTS}
        )
        self.store.replace_table(TableName.PRESENTATION, [presentation], notify=False)
        self._commit(TableName.PRESENTATION)

    def end_session(self) -> None:
        presentation = self.store.presentation_state().model_copy(
            update={"state": PresentationStatus.ENDED}
        )
        polls = [
            p.model_copy(update={"is_active": False})
            for p in self.store.get_table(TableName.POLLS)
        ]
        self.store.replace_table(TableName.POLLS, polls, notify=False)
        self.store.replace_table(TableName.PRESENTATION, [presentation], notify=False)
        self._commit(TableName.POLLS, TableName.PRESENTATION)

    # ----------- side effects -----------

    def _commit(self, *tables: TableName) -> None:
        try:
            self.persistence.save(self.snapshot())
        except Exception:
            logger.exception("saving simulation state failed")
        if self.broadcaster is not None:
            for table in tables:
                self.broadcaster.publish(table, self.store.get_table(table))
        for table in tables:
            self.store.notify(table)

    def _on_broadcast(self, table: TableName, rows: List[Row]) -> None:
        logger.debug("Sibling update for %s (%d rows)", table.value, len(rows))
        self._observe_ids(table, rows)
        self.store.replace_table(table, rows)

    def _observe_ids(self, table: TableName, rows: List[Row]) -> None:
        # keep ids monotonic when siblings allocate them too
        if not rows:
            return
        if table is TableName.POLLS:
            self.next_poll_id = max(self.next_poll_id, max(r.poll_id for r in rows) + 1)
        elif table is TableName.OPTIONS:
            self.next_option_id = max(self.next_option_id, max(r.option_id for r in rows) + 1)
        elif table is TableName.VOTES:
            self.next_vote_id = max(self.next_vote_id, max(r.vote_id for r in rows) + 1)