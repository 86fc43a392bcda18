from __future__ import annotations
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from chat import ChatCompanion
from content import OpenRouterContentProvider
from engine import GameSession, SessionManager
from exceptions import InvalidStateTransition, SessionNotFound
from models import STYLE_PRESETS, ChatRole, RoundStatus
from openrouter_client import OpenRouterClient
from prompts import CLUE_REQUEST

logger = logging.getLogger(__name__)


# ---------- Pydantic IO models ----------
class StartSessionIn(BaseModel):
    style: Optional[str] = Field(None, examples=["pixel art"])


class GuessIn(BaseModel):
    value: str = Field(..., examples=["diehard"])


class StyleIn(BaseModel):
    style: str = Field(..., examples=["claymation"])


class ChatIn(BaseModel):
    message: str = Field(..., min_length=1, examples=["what's my score?"])


class RoundStateOut(BaseModel):
    session_id: str
    status: RoundStatus
    round_id: int
    style: str
    image_url: Optional[str] = None
    # Revealed only once the round is over
    answer: Optional[str] = None
    explanation: Optional[str] = None
    answer_length: int = 0
    word_lengths: List[int] = []
    guess: str = ""
    wrong_guess: bool = False
    time_left: int
    score: int
    level: int
    rounds_played: int
    error: Optional[str] = None
    loading_message: Optional[str] = None
    next_round_ready: bool = False


class GuessOut(BaseModel):
    accepted: bool
    state: RoundStateOut


class ChatMessageOut(BaseModel):
    role: ChatRole
    content: str


class ChatOut(BaseModel):
    busy: bool
    messages: List[ChatMessageOut]


class StylesOut(BaseModel):
    presets: List[str]


# ---------- App ----------
_manager: Optional[SessionManager] = None


def get_manager() -> SessionManager:
    global _manager
    if _manager is None:
        try:
            client = OpenRouterClient()
        except RuntimeError as e:
            # Upstream misconfiguration (bad gateway), e.g. a missing API key
            raise HTTPException(status_code=502, detail=str(e))
        _manager = SessionManager(
            provider=OpenRouterContentProvider(client),
            chat_factory=lambda: ChatCompanion(client),
        )
    return _manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=os.getenv("PICTIONARY_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield
    if _manager is not None:
        await _manager.close_all()


app = FastAPI(title="Image Pictionary API", version="1.0.0", lifespan=lifespan)


def _require(manager: SessionManager, session_id: str) -> GameSession:
    try:
        return manager.require(session_id)
    except SessionNotFound:
        raise HTTPException(404, "Session not found")


def _to_state_out(session: GameSession) -> RoundStateOut:
    st = session.controller.state
    in_round = st.status in (RoundStatus.PLAYING, RoundStatus.WON, RoundStatus.LOST)
    return RoundStateOut(
        session_id=session.session_id,
        status=st.status,
        round_id=st.round_id,
        style=st.style,
        image_url=st.image_url or None,
        answer=st.answer if st.round_over else None,
        explanation=st.explanation if st.round_over else None,
        answer_length=len(st.sanitized_answer) if in_round else 0,
        word_lengths=[len(w) for w in st.answer.split()] if in_round else [],
        guess=st.guess,
        wrong_guess=st.wrong_guess,
        time_left=st.time_left,
        score=st.score,
        level=st.level,
        rounds_played=len(st.past_concepts),
        error=st.error,
        loading_message=st.loading_message or None,
        next_round_ready=session.controller.prefetch_ready,
    )


def _to_chat_out(session: GameSession) -> ChatOut:
    return ChatOut(
        busy=session.chat.busy,
        messages=[ChatMessageOut(role=m.role, content=m.content) for m in session.chat.messages],
    )


@app.get("/v1/pictionary/styles", response_model=StylesOut)
def list_styles():
    return StylesOut(presets=list(STYLE_PRESETS))


@app.post("/v1/pictionary/sessions", response_model=RoundStateOut)
async def start_session(payload: StartSessionIn, manager: SessionManager = Depends(get_manager)):
    style = payload.style.strip() if payload.style else os.getenv("PICTIONARY_STYLE")
    session = manager.create(style=style or None)
    return _to_state_out(session)


@app.get("/v1/pictionary/sessions/{session_id}", response_model=RoundStateOut)
async def get_state(session_id: str, manager: SessionManager = Depends(get_manager)):
    return _to_state_out(_require(manager, session_id))


@app.delete("/v1/pictionary/sessions/{session_id}", status_code=204)
async def close_session(session_id: str, manager: SessionManager = Depends(get_manager)):
    try:
        await manager.close(session_id)
    except SessionNotFound:
        raise HTTPException(404, "Session not found")


@app.post("/v1/pictionary/sessions/{session_id}/rounds", response_model=RoundStateOut)
async def start_round(session_id: str, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    # Content failures land in state.error, not as an HTTP error
    await session.controller.start_round()
    return _to_state_out(session)


@app.post("/v1/pictionary/sessions/{session_id}/guess", response_model=GuessOut)
async def submit_guess(session_id: str, g: GuessIn, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    accepted = session.controller.submit_guess(g.value)
    return GuessOut(accepted=accepted, state=_to_state_out(session))


@app.put("/v1/pictionary/sessions/{session_id}/style", response_model=RoundStateOut)
async def set_style(session_id: str, s: StyleIn, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    try:
        session.controller.set_style(s.style)
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_state_out(session)


@app.post("/v1/pictionary/sessions/{session_id}/reset", response_model=RoundStateOut)
async def reset_game(session_id: str, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    session.controller.reset_game()
    return _to_state_out(session)


@app.get("/v1/pictionary/sessions/{session_id}/chat", response_model=ChatOut)
async def get_chat(session_id: str, manager: SessionManager = Depends(get_manager)):
    return _to_chat_out(_require(manager, session_id))


@app.post("/v1/pictionary/sessions/{session_id}/chat", response_model=ChatOut)
async def send_chat(session_id: str, c: ChatIn, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    try:
        await session.chat.send_user_message(c.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_chat_out(session)


@app.post("/v1/pictionary/sessions/{session_id}/clue", response_model=ChatOut)
async def request_clue(session_id: str, manager: SessionManager = Depends(get_manager)):
    session = _require(manager, session_id)
    if session.controller.status is not RoundStatus.PLAYING:
        raise HTTPException(status_code=409, detail="Clues are only available during a round.")
    await session.chat.send_user_message(CLUE_REQUEST)
    return _to_chat_out(session)
