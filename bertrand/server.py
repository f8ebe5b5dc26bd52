"""
HTTP and WebSocket server for the Bertrand game.

Admins drive sessions over REST; players and displays connect to a
session's WebSocket to receive state snapshots and submit bids.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import asdict
import logging
from typing import Callable, Dict, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from shared.config import GAME_CONFIG_DEFAULTS, MODELS
from shared.llm_player import LLMError
from shared.server_base import ConnectionHub, run_server
from .autopilot import AutopilotScheduler
from .bots import BotBidder
from .demand import DEFAULT_ALPHA, DEFAULT_MARKET_SIZE, LOGIT
from .engine import GameEngine
from .errors import GameError, NotFoundError, StateConflictError, StoreError, ValidationError
from .leaderboard import build_leaderboard, sort_leaderboard
from .models import ROUND_ROBIN, GameConfig, GameState, Session
from .session_names import CATEGORY_ORDER, generate_session_name, next_category
from .store import InMemoryGameStore


logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    StateConflictError: 409,
    StoreError: 503,
}


class SessionRequest(BaseModel):
    name: Optional[str] = None
    total_rounds: int = GAME_CONFIG_DEFAULTS["total_rounds"]
    round_time_limit: int = GAME_CONFIG_DEFAULTS["round_time_limit"]
    min_bid: float = GAME_CONFIG_DEFAULTS["min_bid"]
    max_bid: float = GAME_CONFIG_DEFAULTS["max_bid"]
    cost_per_unit: float = GAME_CONFIG_DEFAULTS["cost_per_unit"]
    max_players: int = GAME_CONFIG_DEFAULTS["max_players"]
    alpha: float = DEFAULT_ALPHA
    market_size: float = DEFAULT_MARKET_SIZE
    demand_model: str = LOGIT
    rivalry_mode: str = ROUND_ROBIN

    def to_config(self) -> GameConfig:
        return GameConfig(
            total_rounds=self.total_rounds,
            round_time_limit=self.round_time_limit,
            min_bid=self.min_bid,
            max_bid=self.max_bid,
            cost_per_unit=self.cost_per_unit,
            max_players=self.max_players,
            alpha=self.alpha,
            market_size=self.market_size,
            demand_model=self.demand_model,
            rivalry_mode=self.rivalry_mode,
        )


class PlayerRequest(BaseModel):
    name: str


class BidRequest(BaseModel):
    player: str
    bid: float


class RivalriesRequest(BaseModel):
    rivalries: Dict[str, List[str]]


class ExtendRequest(BaseModel):
    seconds: int


class AutopilotRequest(BaseModel):
    enabled: bool


class StatusRequest(BaseModel):
    status: str


class BotRequest(BaseModel):
    name: str
    model: str


def session_to_dict(session: Session) -> dict:
    data = asdict(session)
    if session.game_state is not None:
        data["game_state"] = session.game_state.to_dict()
    return data


class BertrandManager:
    """Game manager: engine, autopilot, bots and live connections."""

    def __init__(self, engine: Optional[GameEngine] = None,
                 autopilot: Optional[AutopilotScheduler] = None):
        self.engine = engine or GameEngine(InMemoryGameStore())
        self.autopilot = autopilot or AutopilotScheduler(self.engine)
        self.hub = ConnectionHub()
        self.bots: Dict[str, Dict[str, BotBidder]] = {}
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Dict[str, Callable[[], None]] = {}
        self._tasks = set()
        self.name_category = CATEGORY_ORDER[0]

    def _on_state(self, session_id: str, state: GameState):
        """Store callback; may run on any thread."""
        if self.loop is None or self.loop.is_closed():
            return
        msg = {"type": "state", "session_id": session_id, "state": state.to_dict()}
        asyncio.run_coroutine_threadsafe(self.hub.broadcast(session_id, msg), self.loop)

    async def connect(self, session_id: str, ws: WebSocket):
        self.engine.get_state(session_id)
        self.loop = asyncio.get_running_loop()
        await self.hub.connect(session_id, ws)
        if session_id in self._unsubscribe:
            state = self.engine.get_state(session_id)
            await ws.send_json({"type": "state", "session_id": session_id, "state": state.to_dict()})
        else:
            self._unsubscribe[session_id] = self.engine.store.subscribe(
                session_id, lambda state: self._on_state(session_id, state)
            )

    def disconnect(self, session_id: str, ws: WebSocket):
        if self.hub.disconnect(session_id, ws) == 0:
            unsubscribe = self._unsubscribe.pop(session_id, None)
            if unsubscribe:
                unsubscribe()

    async def handle_message(self, session_id: str, ws: WebSocket, data: dict):
        """Handle incoming WebSocket messages."""
        if not isinstance(data, dict):
            await ws.send_json({"type": "error", "message": "Messages must be JSON objects"})
            return
        msg_type = data.get("type")
        try:
            if msg_type == "submit_bid":
                self.engine.submit_bid(session_id, data.get("player", ""), data.get("bid"))
                await ws.send_json({"type": "bid_accepted", "player": data.get("player")})
            elif msg_type == "ping":
                await ws.send_json({"type": "pong"})
            else:
                await ws.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})
        except GameError as e:
            await ws.send_json({"type": "error", "message": str(e)})

    def new_session_name(self) -> str:
        """Generated names rotate through the word categories."""
        name = generate_session_name(self.name_category)
        self.name_category = next_category(self.name_category)
        return name

    def add_bot(self, session_id: str, name: str, model_id: str) -> GameState:
        if model_id not in MODELS:
            raise ValidationError(f"Unknown model: {model_id}")
        state = self.engine.register_player(session_id, name)
        self.bots.setdefault(session_id, {})[name.strip()] = BotBidder(name=name.strip(), model_id=model_id)
        return state

    async def play_bots(self, session_id: str):
        """Ask every bot in the session for a bid and submit it."""
        loop = asyncio.get_running_loop()
        for name, bot in list(self.bots.get(session_id, {}).items()):
            state = self.engine.get_state(session_id)
            if name not in state.players or not state.round_active:
                continue
            try:
                bid = await loop.run_in_executor(None, bot.choose_bid, state)
                self.engine.submit_bid(session_id, name, bid)
            except (LLMError, GameError) as e:
                logger.warning("Bot %s could not bid in session %s: %s", name, session_id, e)

    async def start_round(self, session_id: str) -> GameState:
        state = self.engine.start_round(session_id)
        if self.bots.get(session_id):
            task = asyncio.create_task(self.play_bots(session_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return state


def create_app(manager: Optional[BertrandManager] = None, start_autopilot: bool = True) -> FastAPI:
    """Create the FastAPI app for the Bertrand game."""
    manager = manager or BertrandManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager.loop = asyncio.get_running_loop()
        if start_autopilot:
            manager.autopilot.start()
        yield
        await manager.autopilot.stop()

    app = FastAPI(title="Bertrand Arena", lifespan=lifespan)
    app.state.manager = manager
    engine = manager.engine

    @app.exception_handler(GameError)
    async def game_error_handler(request: Request, exc: GameError):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
        return JSONResponse(status_code=status, content={"error": type(exc).__name__, "detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"error": "ValueError", "detail": str(exc)})

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    # ---- sessions ----

    @app.post("/sessions", status_code=201)
    async def create_session(req: SessionRequest):
        name = req.name or manager.new_session_name()
        session = engine.create_session(name, req.to_config())
        return session_to_dict(session)

    @app.get("/sessions")
    async def list_sessions():
        return [meta.to_dict() for meta in engine.list_sessions()]

    @app.get("/sessions/{session_id}")
    async def get_session(session_id: str):
        return session_to_dict(engine.get_session(session_id))

    @app.delete("/sessions/{session_id}")
    async def delete_session(session_id: str):
        engine.delete_session(session_id)
        manager.bots.pop(session_id, None)
        return {"deleted": session_id}

    @app.post("/sessions/{session_id}/status")
    async def update_status(session_id: str, req: StatusRequest):
        return session_to_dict(engine.update_session_status(session_id, req.status))

    @app.post("/sessions/{session_id}/start")
    async def start_game(session_id: str):
        return engine.start_game(session_id).to_dict()

    @app.post("/sessions/{session_id}/end")
    async def end_game(session_id: str):
        return engine.end_game(session_id).to_dict()

    @app.post("/sessions/{session_id}/reset")
    async def reset_game(session_id: str):
        manager.bots.pop(session_id, None)
        return engine.reset_game(session_id).to_dict()

    # ---- players ----

    @app.post("/sessions/{session_id}/players")
    async def register_player(session_id: str, req: PlayerRequest):
        return engine.register_player(session_id, req.name).to_dict()

    @app.delete("/sessions/{session_id}/players/{name}")
    async def unregister_player(session_id: str, name: str):
        manager.bots.get(session_id, {}).pop(name, None)
        return engine.unregister_player(session_id, name).to_dict()

    @app.post("/sessions/{session_id}/players/{name}/timeout")
    async def timeout_player(session_id: str, name: str):
        return engine.timeout_player(session_id, name).to_dict()

    @app.post("/sessions/{session_id}/players/{name}/untimeout")
    async def un_timeout_player(session_id: str, name: str):
        return engine.un_timeout_player(session_id, name).to_dict()

    @app.post("/sessions/{session_id}/bots")
    async def add_bot(session_id: str, req: BotRequest):
        return manager.add_bot(session_id, req.name, req.model).to_dict()

    # ---- rounds ----

    @app.post("/sessions/{session_id}/rounds/start")
    async def start_round(session_id: str):
        state = await manager.start_round(session_id)
        return state.to_dict()

    @app.post("/sessions/{session_id}/rounds/end")
    async def end_round(session_id: str):
        settlement = engine.end_current_round(session_id)
        return {
            "result": asdict(settlement.result),
            "timeout_bids": settlement.timeout_bids,
            "state": settlement.state.to_dict(),
        }

    @app.post("/sessions/{session_id}/rounds/extend")
    async def extend_round(session_id: str, req: ExtendRequest):
        return engine.extend_round_time(session_id, req.seconds).to_dict()

    @app.post("/sessions/{session_id}/bids")
    async def submit_bid(session_id: str, req: BidRequest):
        return engine.submit_bid(session_id, req.player, req.bid).to_dict()

    @app.put("/sessions/{session_id}/rivalries")
    async def update_rivalries(session_id: str, req: RivalriesRequest):
        return engine.update_rivalries(session_id, req.rivalries).to_dict()

    @app.post("/sessions/{session_id}/rivalries/auto")
    async def auto_assign_rivals(session_id: str):
        return engine.auto_assign_rivals(session_id).to_dict()

    @app.post("/sessions/{session_id}/autopilot")
    async def toggle_autopilot(session_id: str, req: AutopilotRequest):
        return manager.autopilot.toggle_autopilot(session_id, req.enabled).to_dict()

    # ---- leaderboard ----

    @app.get("/leaderboard")
    async def leaderboard(order_by: str = "leaderboard_points", descending: bool = True):
        entries = build_leaderboard(engine.completed_histories())
        return [e.to_dict() for e in sort_leaderboard(entries, order_by, descending)]

    @app.websocket("/sessions/{session_id}/ws")
    async def websocket_endpoint(ws: WebSocket, session_id: str):
        try:
            await manager.connect(session_id, ws)
        except NotFoundError:
            await ws.close(code=4404)
            return
        try:
            while True:
                try:
                    data = await ws.receive_json()
                except ValueError:
                    await ws.send_json({"type": "error", "message": "Messages must be JSON objects"})
                    continue
                await manager.handle_message(session_id, ws, data)
        except WebSocketDisconnect:
            pass
        finally:
            manager.disconnect(session_id, ws)

    return app


def run(host: str = "0.0.0.0", port: int = 8000, autopilot: bool = True):
    """Run the server."""
    app = create_app(start_autopilot=autopilot)
    run_server(app, host=host, port=port)


if __name__ == "__main__":
    run()
