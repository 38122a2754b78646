import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .client import SyncClient
from .config import LOG_LEVEL, PORT, SyncConfig
from .errors import SessionNotJoined, UnknownTable
from .logging_setup import setup_logging
from .models import JoinIn, PollIn, VoteIn

logger = logging.getLogger(__name__)


def create_app(config: Optional[SyncConfig] = None, **client_kwargs) -> FastAPI:
    """
    One front-end instance per process. The sync client is built and
    connected in the lifespan and torn down on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = SyncClient(config or SyncConfig(), **client_kwargs)
        outcome = await client.connect()
        logger.info("Sync client ready: %s", outcome.value)
        app.state.client = client
        yield
        await client.close()

    app = FastAPI(title="Live Polling Sync Client", lifespan=lifespan)

    @app.exception_handler(SessionNotJoined)
    async def _not_joined(request: Request, exc: SessionNotJoined):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(UnknownTable)
    async def _unknown_table(request: Request, exc: UnknownTable):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    def client_of(request: Request) -> SyncClient:
        return request.app.state.client

    @app.post("/session/join")
    async def join_session(body: JoinIn, request: Request):
        client = client_of(request)
        outcome = await client.join_session(body.session_id, body.role)
        return {
            "ok": True,
            "participant_id": client.participant_id,
            "role": client.role.value,
            "mode": client.mode.value,
            "outcome": outcome.value,
        }

    @app.post("/polls")
    async def create_poll(body: PollIn, request: Request):
        outcome = await client_of(request).create_poll(body.question, body.options)
        return {"ok": True, "outcome": outcome.value}

    @app.post("/polls/{poll_id}/activate")
    async def activate_poll(poll_id: int, request: Request):
        outcome = await client_of(request).activate_poll(poll_id)
        return {"ok": True, "outcome": outcome.value}

    @app.post("/vote")
    async def vote(v: VoteIn, request: Request):
        outcome = await client_of(request).submit_vote(v.poll_id, v.option_id)
        return {"ok": True, "outcome": outcome.value}

    @app.post("/results")
    async def show_results(request: Request, poll_id: Optional[int] = None):
        outcome = await client_of(request).show_results(poll_id)
        return {"ok": True, "outcome": outcome.value}

    @app.post("/session/end")
    async def end_session(request: Request):
        outcome = await client_of(request).end_session()
        return {"ok": True, "outcome": outcome.value}

    @app.get("/polls")
    def list_polls(request: Request):
        return [p.model_dump(mode="json") for p in client_of(request).polls()]

    @app.get("/poll/{poll_id}")
    def get_poll(poll_id: int, request: Request):
        return client_of(request).results(poll_id).model_dump()

    @app.get("/presentation")
    def presentation(request: Request):
        client = client_of(request)
        current = client.current_poll()
        return {
            "presentation": client.presentation_state().model_dump(mode="json"),
            "current_poll": current.model_dump(mode="json") if current else None,
        }

    @app.get("/tables/{table}")
    def get_table(table: str, request: Request):
        return [r.model_dump(mode="json") for r in client_of(request).get_table(table)]

    @app.get("/status")
    def status(request: Request):
        client = client_of(request)
        return {
            "mode": client.mode.value,
            "status": client.status.value,
            "endpoint": client.connection.endpoint,
            "queued": len(client.connection.queue),
            "reconnect_attempts": client.connection.reconnect_attempts,
            "connect_attempts": client.connection.connect_attempts,
            "participant_id": client.participant_id or None,
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    setup_logging(LOG_LEVEL)
    uvicorn.run("pollsync.main:app", host="0.0.0.0", port=PORT, log_level="info")
