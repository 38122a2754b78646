from .client import CommandOutcome, ConnectOutcome, Mode, SyncClient
from .config import SyncConfig
from .connection import ConnectionManager, ConnectionStatus
from .errors import (
    EndpointUnreachable,
    NoAuthorityReachable,
    PersistenceFailure,
    ReconnectExhausted,
    SendFailure,
    SessionNotJoined,
    SyncError,
    UnknownReducer,
    UnknownTable,
)
from .models import PresentationStatus, ReducerKind, Role, TableName

__all__ = [
    "CommandOutcome",
    "ConnectOutcome",
    "ConnectionManager",
    "ConnectionStatus",
    "EndpointUnreachable",
    "Mode",
    "NoAuthorityReachable",
    "PersistenceFailure",
    "PresentationStatus",
    "ReconnectExhausted",
    "ReducerKind",
    "Role",
    "SendFailure",
    "SessionNotJoined",
    "SyncClient",
    "SyncConfig",
    "SyncError",
    "TableName",
    "UnknownReducer",
    "UnknownTable",
]
