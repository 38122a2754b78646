from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import UnknownReducer, UnknownTable

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_micros(value: int) -> datetime:
    """Wire timestamps are integer microseconds since the Unix epoch."""
    return EPOCH + timedelta(microseconds=int(value))


def to_micros(value: datetime) -> int:
    return (value - EPOCH) // timedelta(microseconds=1)


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class PresentationStatus(str, Enum):
    WAITING = "waiting"
    VOTING = "voting"
    RESULTS = "results"
    ENDED = "ended"


class Row(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _micros_to_datetime(cls, value, info):
        field = cls.model_fields.get(info.field_name)
        if field is not None and field.annotation is datetime:
            if isinstance(value, int) and not isinstance(value, bool):
                return from_micros(value)
        return value


class Participant(Row):
    user_id: str
    session_id: str
    role: Role
    connected_at: datetime


class Poll(Row):
    poll_id: int
    question: str
    is_active: bool = False
    created_at: datetime


class PollOption(Row):
    option_id: int
    poll_id: int
    text: str


class Vote(Row):
    vote_id: int
    poll_id: int
    user_id: str
    option_id: int
    voted_at: datetime


class PresentationState(Row):
    """Singleton row (id 0). current_poll_id 0 means no poll yet."""
    id: int = 0
    current_poll_id: int = 0
    state: PresentationStatus = PresentationStatus.WAITING


class TableName(str, Enum):
    """Replicated tables, valued by their name on the wire."""
    USERS = "user"
    POLLS = "poll"
    OPTIONS = "poll_option"
    VOTES = "vote"
    PRESENTATION = "presentation_state"

    @classmethod
    def parse(cls, name: Union[str, "TableName"]) -> "TableName":
        try:
            return cls(name)
        except ValueError:
            raise UnknownTable(name) from None

    @property
    def row_model(self) -> type:
        return ROW_MODELS[self]

    def decode_rows(self, rows: List[Dict[str, Any]]) -> List[Row]:
        model = self.row_model
        return [model.model_validate(r) for r in rows]


ROW_MODELS: Dict[TableName, type] = {
    TableName.USERS: Participant,
    TableName.POLLS: Poll,
    TableName.OPTIONS: PollOption,
    TableName.VOTES: Vote,
    TableName.PRESENTATION: PresentationState,
}


# ----------- commands (reducer calls) -----------

class ReducerKind(str, Enum):
    JOIN_SESSION = "join_session"
    CREATE_POLL = "create_poll"
    ACTIVATE_POLL = "activate_poll"
    SUBMIT_VOTE = "submit_vote"
    SHOW_RESULTS = "show_results"
    END_SESSION = "end_session"


class JoinSession(BaseModel):
    kind: Literal["join_session"] = "join_session"
    session_id: str
    role: Role

    def wire_args(self) -> List[Any]:
        return [self.session_id, self.role.value]


class CreatePoll(BaseModel):
    kind: Literal["create_poll"] = "create_poll"
    question: str
    options: List[str]

    def wire_args(self) -> List[Any]:
        return [self.question, list(self.options)]


class ActivatePoll(BaseModel):
    kind: Literal["activate_poll"] = "activate_poll"
    poll_id: int

    def wire_args(self) -> List[Any]:
        return [self.poll_id]


class SubmitVote(BaseModel):
    kind: Literal["submit_vote"] = "submit_vote"
    poll_id: int
    option_id: int

    def wire_args(self) -> List[Any]:
        return [self.poll_id, self.option_id]


class ShowResults(BaseModel):
    """
    The remote reducer takes no arguments and keeps the current poll;
    poll_id only matters to the local simulation.
    """
    kind: Literal["show_results"] = "show_results"
    poll_id: Optional[int] = None

    def wire_args(self) -> List[Any]:
        return []


class EndSession(BaseModel):
    kind: Literal["end_session"] = "end_session"

    def wire_args(self) -> List[Any]:
        return []


Command = Annotated[
    Union[JoinSession, CreatePoll, ActivatePoll, SubmitVote, ShowResults, EndSession],
    Field(discriminator="kind"),
]

COMMANDS: Dict[ReducerKind, type] = {
    ReducerKind.JOIN_SESSION: JoinSession,
    ReducerKind.CREATE_POLL: CreatePoll,
    ReducerKind.ACTIVATE_POLL: ActivatePoll,
    ReducerKind.SUBMIT_VOTE: SubmitVote,
    ReducerKind.SHOW_RESULTS: ShowResults,
    ReducerKind.END_SESSION: EndSession,
}


def build_command(kind: Union[str, ReducerKind], *args: Any) -> BaseModel:
    """
    Build a typed command from a reducer name and positional args,
    e.g. build_command("submit_vote", 1, 2).
    """
    try:
        kind = ReducerKind(kind)
    except ValueError:
        raise UnknownReducer(kind) from None
    model = COMMANDS[kind]
    fields = [name for name in model.model_fields if name != "kind"]
    if len(args) > len(fields):
        raise TypeError(f"{kind.value} takes at most {len(fields)} arguments ({len(args)} given)")
    return model(**dict(zip(fields, args)))


# ----------- wire frames -----------

class ReducerCall(BaseModel):
    type: Literal["reducer"] = "reducer"
    reducer: str
    args: List[Any]

    @classmethod
    def from_command(cls, command: BaseModel) -> "ReducerCall":
        return cls(reducer=command.kind, args=command.wire_args())


class TableUpdate(BaseModel):
    type: Literal["table_update"] = "table_update"
    table: str
    rows: List[Dict[str, Any]] = Field(default_factory=list)


# ----------- persisted simulation state -----------

class SimulationState(BaseModel):
    """
    Full fallback-mode state, persisted as one record:
    {polls, options, votes, presentationState, nextPollId, nextOptionId, nextVoteId}
    """
    model_config = ConfigDict(populate_by_name=True)

    polls: List[Poll] = Field(default_factory=list)
    options: List[PollOption] = Field(default_factory=list)
    votes: List[Vote] = Field(default_factory=list)
    presentation_state: PresentationState = Field(
        default_factory=PresentationState, alias="presentationState"
    )
    next_poll_id: int = Field(1, alias="nextPollId")
    next_option_id: int = Field(1, alias="nextOptionId")
    next_vote_id: int = Field(1, alias="nextVoteId")


# ----------- derived views -----------

class OptionResult(BaseModel):
    option_id: int
    text: str
    votes: int
    percentage: int


class PollResults(BaseModel):
    poll_id: int
    question: Optional[str] = None
    total_votes: int
    options: List[OptionResult]


def percentage(count: int, total: int) -> int:
    """round(100 * count / total), halves rounded up; 0 when there are no votes."""
    if total <= 0:
        return 0
    return (200 * count + total) // (2 * total)


# ----------- HTTP bodies -----------

class JoinIn(BaseModel):
    session_id: str = Field(..., examples=["demo"])
    role: Role = Field(..., examples=["admin"])


class PollIn(BaseModel):
    question: str = Field(..., min_length=1, examples=["Pick a color"])
    options: List[str] = Field(..., examples=[["Red", "Blue"]])

    @field_validator("options")
    @classmethod
    def _non_empty_options(cls, value: List[str]) -> List[str]:
        texts = [t.strip() for t in value if t and t.strip()]
        if len(texts) < 2:
            raise ValueError("a poll needs at least two non-empty options")
        return texts


class VoteIn(BaseModel):
    poll_id: int = Field(..., examples=[1])
    option_id: int = Field(..., examples=[2])
