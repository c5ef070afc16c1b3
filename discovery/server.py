"""HTTP and WebSocket surface over one AppContext (FastAPI)."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config.config_loader import ConfigError
from discovery.context import AppContext, NotInitializedError
from discovery.events import ALL_EVENTS, Event
from discovery.experiments import ExperimentError
from discovery.models import utcnow
from discovery.orchestrator import (
    AgentNotFoundError,
    CycleInProgressError,
    OrchestratorError,
    SessionNotActiveError,
)
from discovery.providers.base import ProviderError

logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[Exception], int]] = [
    (NotInitializedError, 400),
    (AgentNotFoundError, 404),
    (SessionNotActiveError, 409),
    (CycleInProgressError, 409),
]


class InitializeRequest(BaseModel):
    api_keys: dict[str, str] = Field(default_factory=dict)
    roster: str | None = None


class SessionStartRequest(BaseModel):
    topic: str | None = None
    language: str | None = None


class LanguageRequest(BaseModel):
    language: str


class ExploreRequest(BaseModel):
    topic: str | None = None


class ExperimentRequest(BaseModel):
    experiment_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    expected: dict[str, Any] | None = None
    theory_id: str | None = None


class QueryRequest(BaseModel):
    question: str


def _error_payload(message: str) -> dict[str, Any]:
    return {"type": "error", "error": message, "timestamp": jsonable_encoder(utcnow())}


class WebSocketHub:
    """Fans bus events out to one bounded queue per connected client.

    A client more than `max_queue` events behind loses its oldest pending events.
    """

    def __init__(self, max_queue: int = 1000) -> None:
        self.max_queue = max_queue
        self._queues: set[asyncio.Queue] = set()
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._queues)

    def connect(self, initial: dict[str, Any] | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        if initial is not None:
            queue.put_nowait(initial)
        self._queues.add(queue)
        return queue

    def disconnect(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    def publish(self, event: Event) -> None:
        # Encode now: event data may reference objects that later cycles mutate.
        payload = jsonable_encoder({"type": event.type, "data": event.data, "timestamp": event.timestamp})
        for queue in self._queues:
            if queue.full():
                queue.get_nowait()
                self.dropped += 1
                logger.debug("WebSocket client queue full, dropped oldest event")
            queue.put_nowait(payload)


def create_app(context: AppContext) -> FastAPI:
    hub = WebSocketHub()
    context.bus.subscribe(ALL_EVENTS, hub.publish)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await context.stop_auto(announce=False)

    app = FastAPI(title="Discovery Council", lifespan=lifespan)
    app.state.context = context
    app.state.hub = hub

    @app.exception_handler(OrchestratorError)
    async def _orchestrator_error(request: Request, exc: OrchestratorError) -> JSONResponse:
        status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
        return JSONResponse(status_code=status, content={"error": str(exc)})

    @app.exception_handler(ExperimentError)
    async def _experiment_error(request: Request, exc: ExperimentError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ConfigError)
    async def _config_error(request: Request, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ProviderError)
    async def _provider_error(request: Request, exc: ProviderError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    # ── Control ────────────────────────────────────────────────

    @app.post("/api/initialize")
    async def initialize(body: InitializeRequest) -> dict[str, Any]:
        await context.stop_auto(announce=False)
        context.initialize(body.api_keys, body.roster)
        return {"success": True, "roster": context.roster_name, "agents": context.roster()}

    @app.post("/api/session/start")
    async def start_session(body: SessionStartRequest) -> dict[str, Any]:
        orchestrator = context.require()
        session = orchestrator.start_session(body.topic or context.config.defaults.topic, body.language)
        return {"success": True, "session_id": session.id, "topic": session.topic, "language": session.language}

    @app.post("/api/session/stop")
    async def stop_session() -> dict[str, Any]:
        session = context.require().stop_session()
        return {"success": True, "stopped": session is not None, "session_id": session.id if session else None}

    @app.post("/api/language")
    async def set_language(body: LanguageRequest) -> dict[str, Any]:
        return {"success": True, "language": context.require().set_language(body.language)}

    @app.post("/api/cycle")
    async def run_cycle():
        return await context.require().run_cycle()

    @app.post("/api/explore")
    async def explore(body: ExploreRequest):
        return await context.require().explore_topic(body.topic or context.config.defaults.topic)

    @app.post("/api/experiment")
    async def run_experiment(body: ExperimentRequest):
        return context.require().run_experiment(
            body.experiment_id, body.parameters, body.expected, theory_id=body.theory_id, requested_by="observer"
        )

    @app.post("/api/agent/{agent_key}/query")
    async def query_agent(agent_key: str, body: QueryRequest) -> dict[str, Any]:
        result = await context.require().query_agent(agent_key, body.question)
        return {"agent_key": agent_key, "response": jsonable_encoder(result)}

    # ── Reads ────────────────────────────────────────────────

    @app.get("/api/state")
    async def get_state() -> dict[str, Any]:
        state = context.require().get_state()
        state["roster"] = context.roster_name
        state["auto_cycle"] = {"running": context.auto_running, "interval": context.auto_interval_sec}
        state["clients"] = len(hub)
        return jsonable_encoder(state)

    @app.get("/api/theories")
    async def get_theories():
        return context.require().theories

    @app.get("/api/discoveries")
    async def get_discoveries():
        return context.require().discoveries

    @app.get("/api/discussions")
    async def get_discussions():
        return context.require().discussions

    @app.get("/api/knowledge")
    async def get_knowledge() -> dict[str, Any]:
        return context.knowledge.to_dict()

    @app.get("/api/experiments")
    async def get_experiments() -> dict[str, Any]:
        orchestrator = context.require()
        return jsonable_encoder(
            {
                "available": orchestrator.world.available_experiments(),
                "observational_data": {
                    category: orchestrator.world.observational_data(category)
                    for category in orchestrator.world.observational_data()
                },
                "records": orchestrator.experiments,
            }
        )

    # ── WebSocket ────────────────────────────────────────────

    pending: set[asyncio.Task] = set()

    def _spawn(queue: asyncio.Queue, coro) -> None:
        async def runner() -> None:
            try:
                await coro
            except (OrchestratorError, ExperimentError, ValueError) as exc:
                queue.put_nowait(_error_payload(str(exc)))
            except Exception as exc:
                logger.exception("WebSocket command failed")
                queue.put_nowait(_error_payload(f"Internal error: {exc}"))

        task = asyncio.create_task(runner())
        pending.add(task)
        task.add_done_callback(pending.discard)

    async def _handle(message: dict[str, Any], queue: asyncio.Queue) -> None:
        kind = message.get("type")
        if kind == "run_cycle":
            _spawn(queue, context.require().run_cycle())
        elif kind == "query_agent":
            agent_key, question = message.get("agent_key"), message.get("question")
            if not agent_key or not question:
                queue.put_nowait(_error_payload("query_agent needs agent_key and question"))
                return
            _spawn(queue, context.require().query_agent(agent_key, question))
        elif kind == "start_auto":
            await context.start_auto(message.get("interval"))
        elif kind == "stop_auto":
            await context.stop_auto()
        else:
            queue.put_nowait(_error_payload(f"Unknown message type: {kind!r}"))

    async def _pump(websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            await websocket.send_json(await queue.get())

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        initial = None
        if context.orchestrator is not None:
            initial = jsonable_encoder(
                {"type": "initial_state", "data": context.orchestrator.get_state(), "timestamp": utcnow()}
            )
        queue = hub.connect(initial)
        sender = asyncio.create_task(_pump(websocket, queue))
        logger.info("WebSocket client connected (%d total)", len(hub))
        try:
            while True:
                text = await websocket.receive_text()
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    queue.put_nowait(_error_payload("Invalid JSON"))
                    continue
                if not isinstance(message, dict):
                    queue.put_nowait(_error_payload("Message must be a JSON object"))
                    continue
                try:
                    await _handle(message, queue)
                except (OrchestratorError, ValueError) as exc:
                    queue.put_nowait(_error_payload(str(exc)))
        except WebSocketDisconnect:
            pass
        finally:
            hub.disconnect(queue)
            sender.cancel()
            logger.info("WebSocket client disconnected (%d total)", len(hub))

    return app
