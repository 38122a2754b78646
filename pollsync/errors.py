"""Error taxonomy of the sync client."""


class SyncError(Exception):
    pass


class EndpointUnreachable(SyncError):
    """One candidate endpoint could not be connected."""

    def __init__(self, endpoint: str, reason: object = None):
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Failed to connect to {endpoint}: {reason}")


class NoAuthorityReachable(SyncError):
    """Every candidate endpoint failed and fallback is not allowed."""

    def __init__(self, endpoints):
        self.endpoints = list(endpoints)
        super().__init__(
            f"Failed to connect to any endpoint ({len(self.endpoints)} tried)"
        )


class UnknownTable(SyncError, KeyError):
    def __init__(self, name: object):
        self.name = name
        super().__init__(f"Unknown table: {name}")

    def __str__(self) -> str:
        return self.args[0]


class UnknownReducer(SyncError):
    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(f"Unknown reducer: {kind}")


class SessionNotJoined(SyncError):
    """A command was issued before join_session."""


class PersistenceFailure(SyncError):
    pass


class SendFailure(SyncError):
    pass


class ReconnectExhausted(SyncError):
    def __init__(self, endpoint: str, attempts: int):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(f"Gave up reconnecting to {endpoint} after {attempts} attempts")
