# single entry point used by the admin, voter and presentation front-ends
import logging
import secrets
import string
from enum import Enum
from typing import List, Optional, Union

from .broadcast import LocalBroadcastChannel
from .config import SyncConfig
from .connection import ConnectionManager, ConnectionStatus, Opener
from .errors import EndpointUnreachable, NoAuthorityReachable, SessionNotJoined
from .models import (
    ActivatePoll,
    Command,
    CreatePoll,
    EndSession,
    JoinSession,
    OptionResult,
    Poll,
    PollOption,
    PollResults,
    PresentationState,
    ReducerCall,
    ReducerKind,
    Role,
    Row,
    ShowResults,
    SubmitVote,
    TableName,
    Vote,
    build_command,
    percentage,
)
from .persistence import FileSnapshotStore
from .simulation import SimulationEngine
from .state import Observer, Subscription, TableStore

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.digits + string.ascii_lowercase


def new_participant_id(length: int = 8) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class Mode(str, Enum):
    OFFLINE = "offline"
    REMOTE = "remote"
    FALLBACK = "fallback"


class ConnectOutcome(str, Enum):
    REMOTE = "connected-remote"
    FALLBACK = "connected-fallback"
    FAILED = "failed"


class CommandOutcome(str, Enum):
    SENT = "sent"
    QUEUED = "queued"
    APPLIED = "applied"


class SyncClient:
    """
    Keeps this instance's replica of the poll tables in sync, against the
    remote authority when one is reachable, otherwise against the local
    simulation. Consumers never need to know which mode is active.

    Build one per application and pass it to whatever needs it:

        async with SyncClient(SyncConfig()) as client:
            await client.join_session("demo", "admin")
            await client.create_poll("Pick a color", ["Red", "Blue"])
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        *,
        persistence=None,
        opener: Optional[Opener] = None,
        participant_id: Optional[str] = None,
    ):
        self.config = config or SyncConfig()
        self.store = TableStore()
        self.connection = ConnectionManager(
            self.config.endpoints,
            self.store.replace_table,
            connect_timeout=self.config.connect_timeout,
            max_reconnect_attempts=self.config.max_reconnect_attempts,
            reconnect_delay=self.config.reconnect_delay,
            opener=opener,
        )
        self.persistence = persistence or FileSnapshotStore(
            self.config.data_dir, self.config.state_key
        )
        self.engine: Optional[SimulationEngine] = None
        self.channel: Optional[LocalBroadcastChannel] = None
        self.mode = Mode.OFFLINE
        self.participant_id = participant_id or ""
        self.session_id: Optional[str] = None
        self.role: Optional[Role] = None

    async def __aenter__(self) -> "SyncClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ----------- connection -----------

    async def connect(self, endpoint: Optional[str] = None) -> ConnectOutcome:
        if self.mode is Mode.FALLBACK:
            return ConnectOutcome.FALLBACK
        if self.connection.connected:
            return ConnectOutcome.REMOTE

        if self.config.force_simulation:
            logger.info("Simulation mode forced by configuration")
            self._enable_fallback()
            return ConnectOutcome.FALLBACK

        if endpoint:
            try:
                await self.connection.connect(endpoint)
            except EndpointUnreachable as e:
                logger.error("%s", e)
                return ConnectOutcome.FAILED
        else:
            try:
                await self.connection.connect()
            except NoAuthorityReachable:
                if not self.config.allow_fallback:
                    raise
                logger.info("No remote authority reachable, using local simulation mode")
                self._enable_fallback()
                return ConnectOutcome.FALLBACK

        self.mode = Mode.REMOTE
        return ConnectOutcome.REMOTE

    def _enable_fallback(self) -> None:
        if self.connection.queue:
            logger.warning(
                "Dropping %d command(s) queued for the remote authority",
                len(self.connection.queue),
            )
            self.connection.queue.clear()
        self.channel = LocalBroadcastChannel(
            self.config.channel,
            directory=self.config.data_dir,
            poll_interval=self.config.broadcast_interval,
        )
        self.engine = SimulationEngine(
            self.store,
            self.persistence,
            self.channel,
            participant_id=self.participant_id,
        )
        self.engine.start()
        self.channel.start()
        self.mode = Mode.FALLBACK
        logger.info("Simulation mode active (channel %s)", self.config.channel)

    async def close(self) -> None:
        if self.engine is not None:
            self.engine.stop()
            self.engine = None
        if self.channel is not None:
            await self.channel.wait_closed()
            self.channel = None
        await self.connection.close()
        self.mode = Mode.OFFLINE

    @property
    def status(self) -> ConnectionStatus:
        if self.mode is Mode.FALLBACK:
            return ConnectionStatus.SIMULATED
        return self.connection.status

    def is_connected(self) -> bool:
        return self.mode is Mode.FALLBACK or self.connection.connected

    # ----------- commands -----------

    async def join_session(self, session_id: str, role: Union[str, Role]) -> CommandOutcome:
        role = Role(role)
        if not self.participant_id:
            self.participant_id = new_participant_id()
        if self.engine is not None:
            self.engine.participant_id = self.participant_id
        self.session_id = session_id
        self.role = role
        logger.info("Joining session %s as %s", session_id, role.value)
        return await self._dispatch(JoinSession(session_id=session_id, role=role))

    async def issue(self, command: Command) -> CommandOutcome:
        if isinstance(command, JoinSession):
            return await self.join_session(command.session_id, command.role)
        if self.role is None:
            raise SessionNotJoined("join_session must be called before issuing commands")
        return await self._dispatch(command)

    async def issue_command(self, kind: Union[str, ReducerKind], *args) -> CommandOutcome:
        return await self.issue(build_command(kind, *args))

    async def _dispatch(self, command: Command) -> CommandOutcome:
        if self.mode is Mode.FALLBACK:
            self.engine.apply(command)
            return CommandOutcome.APPLIED
        call = ReducerCall.from_command(command)
        logger.debug("Calling reducer %s", call.reducer)
        if await self.connection.send(call.model_dump()):
            return CommandOutcome.SENT
        return CommandOutcome.QUEUED

    async def create_poll(self, question: str, options: List[str]) -> CommandOutcome:
        return await self.issue(CreatePoll(question=question, options=options))

    async def activate_poll(self, poll_id: int) -> CommandOutcome:
        return await self.issue(ActivatePoll(poll_id=poll_id))

    async def submit_vote(self, poll_id: int, option_id: int) -> CommandOutcome:
        return await self.issue(SubmitVote(poll_id=poll_id, option_id=option_id))

    async def show_results(self, poll_id: Optional[int] = None) -> CommandOutcome:
        return await self.issue(ShowResults(poll_id=poll_id))

    async def end_session(self) -> CommandOutcome:
        return await self.issue(EndSession())

    # ----------- reads -----------

    def get_table(self, name: Union[str, TableName]) -> List[Row]:
        return self.store.get_table(name)

    def subscribe(self, name: Union[str, TableName], observer: Observer) -> Subscription:
        return self.store.subscribe(name, observer)

    def polls(self) -> List[Poll]:
        return self.store.get_table(TableName.POLLS)

    def options(self, poll_id: int) -> List[PollOption]:
        return [o for o in self.store.get_table(TableName.OPTIONS) if o.poll_id == poll_id]

    def votes(self, poll_id: int) -> List[Vote]:
        return [v for v in self.store.get_table(TableName.VOTES) if v.poll_id == poll_id]

    def presentation_state(self) -> PresentationState:
        return self.store.presentation_state()

    def current_poll(self) -> Optional[Poll]:
        current_id = self.presentation_state().current_poll_id
        return next((p for p in self.polls() if p.poll_id == current_id), None)

    def active_poll(self) -> Optional[Poll]:
        return next((p for p in self.polls() if p.is_active), None)

    def my_vote(self, poll_id: int) -> Optional[Vote]:
        return next((v for v in self.votes(poll_id) if v.user_id == self.participant_id), None)

    def results(self, poll_id: Optional[int] = None) -> PollResults:
        """Vote count and rounded percentage per option of a poll (default: current poll)."""
        if poll_id is None:
            poll_id = self.presentation_state().current_poll_id
        votes = self.votes(poll_id)
        total = len(votes)
        poll = next((p for p in self.polls() if p.poll_id == poll_id), None)
        options = []
        for option in self.options(poll_id):
            count = sum(1 for v in votes if v.option_id == option.option_id)
            options.append(
                OptionResult(
                    option_id=option.option_id,
                    text=option.text,
                    votes=count,
                    percentage=percentage(count, total),
                )
            )
        return PollResults(
            poll_id=poll_id,
            question=poll.question if poll else None,
            total_votes=total,
            options=options,
        )
