from __future__ import annotations
import asyncio
import copy
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from content import ContentProvider
from chat import NotificationSink
from exceptions import ContentFetchError, InvalidStateTransition, SessionNotFound
from models import (
    DEFAULT_STYLE, ROUND_TIME, WRONG_GUESS_LOCKOUT,
    PrefetchSlot, RoundContent, RoundState, RoundStatus,
    level_for_score, sanitize_answer,
)
from prompts import (
    THINKING_EVENT, context_update, kickoff_event, timeout_event, win_event,
)

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[\W_]", re.UNICODE)


# ---------- Guess evaluation ----------
def clean_guess(value: str, limit: int) -> str:
    """Drop everything that is not a letter or digit, then cut to `limit` chars."""
    return _NON_ALNUM.sub("", value or "")[:max(0, limit)]


def guess_matches(guess: str, answer: str) -> bool:
    return guess.lower() == sanitize_answer(answer).lower()


class RoundTimer:
    """
    Countdown ticker: calls `on_tick` once per interval until cancelled.
    Arming always cancels the previous tick stream first.
    """
    def __init__(self, interval: float = 1.0):
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, on_tick: Callable[[], None]) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(on_tick))

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, on_tick: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(self.interval)
            on_tick()


class RoundController:
    """
    Sole writer of the round state.
    - Every start/reset allocates a new round id; async completions carrying an
      older id are dropped.
    - After a round ends the next round's content is fetched speculatively.
    - Notifications go out in emission order without blocking the game.
    Must be driven from a running asyncio loop.
    """
    def __init__(
        self,
        provider: ContentProvider,
        sink: NotificationSink,
        style: Optional[str] = None,
        round_time: int = ROUND_TIME,
        tick_interval: float = 1.0,
        lockout: float = WRONG_GUESS_LOCKOUT,
    ):
        self.provider = provider
        self.sink = sink
        self.round_time = round_time
        self.lockout = lockout
        self._state = RoundState(time_left=round_time, style=style or DEFAULT_STYLE)
        self._prefetch = PrefetchSlot()
        self._timer = RoundTimer(tick_interval)
        self._lockout_handle: Optional[asyncio.TimerHandle] = None
        self._notify_tail: Optional[asyncio.Task] = None
        self._notify_epoch = 0
        self._notify_tasks: Set[asyncio.Task] = set()

    # ---------- Read access ----------
    @property
    def state(self) -> RoundState:
        return copy.deepcopy(self._state)

    @property
    def status(self) -> RoundStatus:
        return self._state.status

    @property
    def prefetch_pending(self) -> bool:
        return self._prefetch.task is not None

    @property
    def prefetch_ready(self) -> bool:
        return self._prefetch.ready

    @property
    def timer_active(self) -> bool:
        return self._timer.active

    # ---------- Round lifecycle ----------
    async def start_round(self) -> None:
        st = self._state
        if st.status is RoundStatus.LOADING:
            logger.debug("start_round ignored: round %d is still loading", st.round_id)
            return

        was_finished = st.round_over
        first_round = not st.past_concepts
        st.round_id += 1
        round_id = st.round_id

        st.status = RoundStatus.LOADING
        st.loading_message = "thinking"
        self._timer.cancel()
        self._cancel_lockout()
        st.error = None
        st.guess = ""
        st.wrong_guess = False
        st.image_url = ""

        if was_finished:
            self._emit(for_user="Next round.")
        if first_round:
            self._emit(for_user="Starting on Level 1.")
        self._emit(for_ai=THINKING_EVENT)

        content: Optional[RoundContent] = None
        pending: Optional[asyncio.Task] = None
        if self._prefetch.ready:
            content = self._prefetch.content
            logger.info("Round %d uses prefetched content", round_id)
        elif self._prefetch.task is not None:
            pending = self._prefetch.task
            logger.info("Round %d waits on the pending prefetch", round_id)
        self._prefetch.clear()

        st.loading_message = "generating"
        try:
            if content is None:
                if pending is not None:
                    content = await pending
                else:
                    content = await self.provider.fetch(list(st.past_concepts), st.style)
        except asyncio.CancelledError:
            self._fail_round(round_id, "Loading was interrupted. Please try again.")
            raise
        except ContentFetchError as e:
            self._fail_round(round_id, str(e))
            return
        except Exception as e:
            logger.exception("Content provider raised an unexpected error")
            self._fail_round(round_id, str(e) or "An unknown error occurred.")
            return

        if round_id != self._state.round_id:
            logger.debug(
                "Discarding stale content %r from round %d (current round %d)",
                content.concept, round_id, self._state.round_id,
            )
            return
        self._commit(content)

    def _commit(self, content: RoundContent) -> None:
        st = self._state
        st.answer = content.concept
        st.explanation = content.explanation
        st.image_url = content.image_url
        st.past_concepts.append(content.concept)
        st.time_left = self.round_time
        st.loading_message = ""
        self._timer.arm(self._on_tick)
        st.status = RoundStatus.PLAYING
        logger.info("Round %d is playing", st.round_id)
        self._emit(for_ai=kickoff_event(content.concept, content.explanation))

    def _fail_round(self, round_id: int, message: str) -> None:
        if round_id != self._state.round_id:
            logger.debug("Stale fetch error from round %d ignored: %s", round_id, message)
            return
        logger.warning("Round %d failed to load: %s", round_id, message)
        st = self._state
        st.error = message
        st.status = RoundStatus.IDLE
        st.loading_message = ""
        # Failed prefetches are not retried; the next start fetches from scratch
        self._prefetch.clear()

    def reset_game(self) -> None:
        old = self._state
        self._timer.cancel()
        self._cancel_lockout()
        self._prefetch.clear()
        self._notify_epoch += 1
        self._state = RoundState(
            round_id=old.round_id + 1, time_left=self.round_time, style=old.style,
        )
        self.sink.reset()
        logger.info("Game reset (round id %d)", self._state.round_id)

    def set_style(self, style: str) -> None:
        style = (style or "").strip()
        if not style:
            raise ValueError("Style must not be empty")
        st = self._state
        if st.status in (RoundStatus.LOADING, RoundStatus.PLAYING):
            raise InvalidStateTransition("The image style can only change between rounds.")
        if style == st.style:
            return
        st.style = style
        if self._prefetch.occupied:
            logger.info("Style changed to %r; dropping prefetched round", style)
            self._prefetch.clear()

    # ---------- Guessing ----------
    def submit_guess(self, value: str) -> bool:
        """
        Replace the accumulated guess with `value` (sanitized and truncated).
        Returns False when input is not accepted right now.
        """
        st = self._state
        if st.status is not RoundStatus.PLAYING or st.wrong_guess:
            return False
        target = st.sanitized_answer
        st.guess = clean_guess(value, len(target))
        if len(st.guess) == len(target):
            if guess_matches(st.guess, st.answer):
                self._win()
            else:
                self._wrong_guess()
        return True

    def _win(self) -> None:
        st = self._state
        st.status = RoundStatus.WON
        self._timer.cancel()
        old_level = st.level
        st.score += 1
        st.level = level_for_score(st.score)
        leveled_up = st.level > old_level

        self._emit(for_user="✅ Correct.")
        if leveled_up:
            self._emit(for_user=f"⭐️ You've reached Level {st.level}!")
        self._emit(for_ai=win_event(st.answer, st.explanation, st.level if leveled_up else None))
        self._emit_context(context_update(st.score, st.level))
        self.prefetch_next_round()

    def _wrong_guess(self) -> None:
        st = self._state
        st.wrong_guess = True
        self._cancel_lockout()
        self._lockout_handle = asyncio.get_running_loop().call_later(
            self.lockout, self._end_lockout, st.round_id,
        )

    def _end_lockout(self, round_id: int) -> None:
        self._lockout_handle = None
        # A newer round has already cleared the guess
        if round_id != self._state.round_id:
            return
        self._state.guess = ""
        self._state.wrong_guess = False

    def _cancel_lockout(self) -> None:
        if self._lockout_handle is not None:
            self._lockout_handle.cancel()
            self._lockout_handle = None

    # ---------- Countdown ----------
    def _on_tick(self) -> None:
        st = self._state
        if st.status is not RoundStatus.PLAYING:
            return
        st.time_left = max(0, st.time_left - 1)
        if st.time_left == 0:
            self._time_up()

    def _time_up(self) -> None:
        st = self._state
        st.status = RoundStatus.LOST
        self._timer.cancel()
        logger.info("Round %d lost on time", st.round_id)
        self._emit(for_user="Time ran out.", for_ai=timeout_event(st.answer, st.explanation))
        self.prefetch_next_round()

    # ---------- Prefetch ----------
    def prefetch_next_round(self) -> None:
        if self._prefetch.occupied:
            return
        st = self._state
        excluded = list(st.past_concepts)
        if st.answer and st.answer not in excluded:
            excluded.append(st.answer)
        task = asyncio.get_running_loop().create_task(self.provider.fetch(excluded, st.style))
        self._prefetch.task = task
        task.add_done_callback(self._on_prefetch_done)
        logger.debug("Prefetching next round (style=%r, %d excluded)", st.style, len(excluded))

    def _on_prefetch_done(self, task: asyncio.Task) -> None:
        current = self._prefetch.task is task
        if task.cancelled():
            if current:
                self._prefetch.clear()
            return
        error = task.exception()
        if not current:
            # consumed by start_round, or invalidated by a style change / reset
            return
        if error is not None:
            logger.warning("Failed to prefetch next round: %s", error)
            self._prefetch.clear()
            return
        self._prefetch.task = None
        self._prefetch.content = task.result()

    # ---------- Notifications ----------
    def _emit(self, for_user: Optional[str] = None, for_ai: Optional[str] = None) -> None:
        self._enqueue(lambda: self.sink.notify(for_user=for_user, for_ai=for_ai))

    def _emit_context(self, text: str) -> None:
        self._enqueue(lambda: self.sink.send_context(text))

    def _enqueue(self, make_call: Callable[[], Awaitable[Any]]) -> None:
        previous = self._notify_tail
        epoch = self._notify_epoch

        async def dispatch() -> None:
            if previous is not None:
                await asyncio.wait([previous])
            if epoch != self._notify_epoch:
                return
            try:
                await make_call()
            except Exception:
                logger.warning("Notification dispatch failed", exc_info=True)

        task = asyncio.get_running_loop().create_task(dispatch())
        self._notify_tasks.add(task)
        task.add_done_callback(self._notify_tasks.discard)
        self._notify_tail = task

    async def drain_notifications(self) -> None:
        tail = self._notify_tail
        if tail is not None:
            await asyncio.wait([tail])

    async def aclose(self) -> None:
        # Anything still in flight belongs to a round that no longer exists
        self._state.round_id += 1
        self._timer.cancel()
        self._cancel_lockout()
        if self._prefetch.task is not None:
            self._prefetch.task.cancel()
        self._prefetch.clear()
        # Queued and in-flight notifications are dropped, not delivered
        self._notify_epoch += 1
        pending = list(self._notify_tasks)
        for task in pending:
            task.cancel()
        self._notify_tail = None
        if pending:
            await asyncio.wait(pending)


# ---------- Sessions ----------
@dataclass
class GameSession:
    session_id: str
    controller: RoundController
    chat: NotificationSink


class SessionManager:
    """
    In-memory sessions; nothing survives a restart.
    `chat_factory` builds one chat side-channel per session.
    """
    def __init__(
        self,
        provider: ContentProvider,
        chat_factory: Callable[[], NotificationSink],
        **controller_options: Any,
    ):
        self.provider = provider
        self.chat_factory = chat_factory
        self.controller_options: Dict[str, Any] = controller_options
        self._sessions: Dict[str, GameSession] = {}

    def create(self, style: Optional[str] = None) -> GameSession:
        sid = str(uuid.uuid4())
        chat = self.chat_factory()
        controller = RoundController(self.provider, chat, style=style, **self.controller_options)
        session = GameSession(session_id=sid, controller=controller, chat=chat)
        self._sessions[sid] = session
        return session

    def get(self, session_id: str) -> Optional[GameSession]:
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> GameSession:
        session = self._sessions.get(session_id)
        if not session:
            raise SessionNotFound(session_id)
        return session

    async def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        await session.controller.aclose()

    async def close_all(self) -> None:
        for sid in list(self._sessions):
            await self.close(sid)

    def __len__(self) -> int:
        return len(self._sessions)
