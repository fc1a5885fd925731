"""Priority processing engine for the triage queue.

One logical worker walks the ordered queue. Two kinds of timed event drive it:

- a recurring cadence tick that picks up the next waiting email when the
  worker is free, and
- a one-shot completion that fires ``process_seconds`` after an email went
  in flight and moves it to the completed list.

Events sit in a single min-heap keyed on (due, seq). ``advance()`` fires every
due event in order and is the only way time moves; all state changes happen
under one lock, so the runner thread and API handlers can share an engine.

Pausing removes the cadence only. A completion that is already scheduled still
fires while paused. ``reset()`` drops every pending event.
"""

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from . import config
from .models import Email, Priority
from .ordering import order_items

logger = logging.getLogger(__name__)

_TICK = "tick"
_COMPLETE = "complete"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    DRAINED = "drained"


class ItemStatus(str, Enum):
    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class QueueRow:
    id: str
    priority: Priority
    status: ItemStatus
    position: int | None


@dataclass(frozen=True)
class QueueSnapshot:
    state: RunState
    running: bool
    progress: float
    ordered_ids: tuple[str, ...]
    completed: tuple[str, ...]
    in_flight: str | None
    urgent_count: int
    normal_count: int
    rows: tuple[QueueRow, ...] = field(default=())
    next_tick_in: float | None = None
    completion_in: float | None = None

    @property
    def completed_count(self) -> int:
        return len(self.completed)

    @property
    def in_flight_count(self) -> int:
        return 1 if self.in_flight is not None else 0

    @property
    def total(self) -> int:
        return len(self.ordered_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "progress": round(self.progress, 1),
            "total": self.total,
            "ordered_ids": list(self.ordered_ids),
            "completed": list(self.completed),
            "in_flight": self.in_flight,
            "urgent_count": self.urgent_count,
            "normal_count": self.normal_count,
            "completed_count": self.completed_count,
            "in_flight_count": self.in_flight_count,
            "next_tick_in": self.next_tick_in,
            "completion_in": self.completion_in,
        }


class ProcessingScheduler:
    """Serial, priority-ordered processing of a fixed set of emails.

    *item_source* is called on construction and on every reset; whatever it
    returns at that moment is the item set for the run.
    """

    def __init__(
        self,
        item_source: Callable[[], Iterable[Email]],
        *,
        cadence_seconds: float = config.CADENCE_SECONDS,
        process_seconds: float = config.PROCESS_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if cadence_seconds <= 0 or process_seconds <= 0:
            raise ValueError("cadence_seconds and process_seconds must be positive")
        self._item_source = item_source
        self.cadence_seconds = float(cadence_seconds)
        self.process_seconds = float(process_seconds)
        self._clock = clock
        self._lock = threading.RLock()
        self._seq = itertools.count()

        self._items: dict[str, Email] = {}
        self._ordered_ids: tuple[str, ...] = ()
        self._completed: list[str] = []
        self._completed_set: set[str] = set()
        self._in_flight: str | None = None
        self._events: list[tuple[float, int, str, str | None]] = []
        self._state = RunState.IDLE

        with self._lock:
            self._load()

    # ── Loading ──

    def _load(self) -> None:
        ordered = order_items(self._item_source())
        self._items = {email.id: email for email in ordered}
        self._ordered_ids = tuple(email.id for email in ordered)
        self._completed = []
        self._completed_set = set()
        self._in_flight = None
        self._events = []
        if self._ordered_ids:
            self._state = RunState.IDLE
        else:
            self._state = RunState.DRAINED
            logger.info("QUEUE_EMPTY nothing to process")

    # ── Event heap ──

    def _schedule(self, due: float, kind: str, item_id: str | None = None) -> None:
        heapq.heappush(self._events, (due, next(self._seq), kind, item_id))

    def _cancel(self, kind: str) -> None:
        kept = [event for event in self._events if event[2] != kind]
        if len(kept) != len(self._events):
            heapq.heapify(kept)
            self._events = kept

    def _next_due(self, kind: str) -> float | None:
        dues = [event[0] for event in self._events if event[2] == kind]
        return min(dues) if dues else None

    # ── Commands ──

    def start(self) -> RunState:
        return self._begin("start")

    def resume(self) -> RunState:
        return self._begin("resume")

    def _begin(self, command: str) -> RunState:
        with self._lock:
            if self._state in (RunState.RUNNING, RunState.DRAINED):
                logger.debug("QUEUE_%s_NOOP state=%s", command.upper(), self._state.value)
                return self._state
            self._state = RunState.RUNNING
            self._schedule(self._clock() + self.cadence_seconds, _TICK)
            logger.info(
                "QUEUE_%s total=%d completed=%d",
                command.upper(), len(self._ordered_ids), len(self._completed),
            )
            return self._state

    def pause(self) -> RunState:
        with self._lock:
            if self._state is not RunState.RUNNING:
                logger.debug("QUEUE_PAUSE_NOOP state=%s", self._state.value)
                return self._state
            self._state = RunState.PAUSED
            self._cancel(_TICK)
            logger.info("QUEUE_PAUSE in_flight=%s", self._in_flight)
            return self._state

    def toggle(self) -> RunState:
        """Pause when running, otherwise resume."""
        with self._lock:
            if self._state is RunState.RUNNING:
                return self.pause()
            return self.resume()

    def reset(self) -> RunState:
        with self._lock:
            discarded = self._in_flight
            self._load()
            if discarded is not None:
                logger.info("QUEUE_RESET discarded_in_flight=%s", discarded)
            if self._state is RunState.DRAINED:
                return self._state
            self._state = RunState.RUNNING
            self._schedule(self._clock() + self.cadence_seconds, _TICK)
            logger.info("QUEUE_RESET total=%d", len(self._ordered_ids))
            return self._state

    def configure(self, *, cadence_seconds: float | None = None,
                  process_seconds: float | None = None) -> None:
        """Change timings. Events already scheduled keep their due time."""
        with self._lock:
            if cadence_seconds is not None:
                if cadence_seconds <= 0:
                    raise ValueError("cadence_seconds must be positive")
                self.cadence_seconds = float(cadence_seconds)
            if process_seconds is not None:
                if process_seconds <= 0:
                    raise ValueError("process_seconds must be positive")
                self.process_seconds = float(process_seconds)

    # ── Time ──

    def advance(self, now: float | None = None) -> int:
        """Fire every event due at or before *now*. Returns the number fired."""
        with self._lock:
            if now is None:
                now = self._clock()
            fired = 0
            while self._events and self._events[0][0] <= now:
                due, _seq, kind, item_id = heapq.heappop(self._events)
                if kind == _TICK:
                    self._on_tick(due)
                else:
                    self._on_complete(item_id, due)
                fired += 1
            return fired

    def _on_tick(self, at: float) -> None:
        if self._in_flight is not None:
            self._schedule(at + self.cadence_seconds, _TICK)
            return
        next_id = self._first_waiting()
        if next_id is None:
            self._drain()
            return
        self._in_flight = next_id
        # Completion is pushed before the next tick so a tie fires it first.
        self._schedule(at + self.process_seconds, _COMPLETE, next_id)
        self._schedule(at + self.cadence_seconds, _TICK)
        logger.info("ITEM_IN_FLIGHT id=%s priority=%s", next_id, self._items[next_id].priority.value)

    def _on_complete(self, item_id: str | None, at: float) -> None:
        if item_id is None or item_id != self._in_flight:
            logger.debug("ITEM_COMPLETE_STALE id=%s", item_id)
            return
        self._completed.append(item_id)
        self._completed_set.add(item_id)
        self._in_flight = None
        logger.info(
            "ITEM_COMPLETED id=%s done=%d/%d",
            item_id, len(self._completed), len(self._ordered_ids),
        )
        if len(self._completed) == len(self._ordered_ids):
            self._drain()

    def _drain(self) -> None:
        self._state = RunState.DRAINED
        self._cancel(_TICK)
        logger.info("QUEUE_DRAINED completed=%d", len(self._completed))

    def _first_waiting(self) -> str | None:
        for item_id in self._ordered_ids:
            if item_id not in self._completed_set:
                return item_id
        return None

    # ── Queries ──

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is RunState.RUNNING

    @property
    def ordered_ids(self) -> tuple[str, ...]:
        return self._ordered_ids

    @property
    def completed(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._completed)

    @property
    def in_flight(self) -> str | None:
        return self._in_flight

    def items(self) -> list[Email]:
        """Emails of the current run, in processing order."""
        with self._lock:
            return [self._items[item_id] for item_id in self._ordered_ids]

    def get_item(self, item_id: str) -> Email | None:
        return self._items.get(item_id)

    def progress(self) -> float:
        """Percent of the run completed; 0 for an empty queue."""
        with self._lock:
            total = len(self._ordered_ids)
            if total == 0:
                return 0.0
            return len(self._completed) / total * 100

    def status_of(self, item_id: str) -> ItemStatus:
        with self._lock:
            if item_id == self._in_flight:
                return ItemStatus.PROCESSING
            if item_id in self._completed_set:
                return ItemStatus.COMPLETED
            return ItemStatus.WAITING

    def queue_position(self, item_id: str) -> int | None:
        """1-based rank among the emails not yet completed."""
        with self._lock:
            return self._positions().get(item_id)

    def _positions(self) -> dict[str, int]:
        positions: dict[str, int] = {}
        for item_id in self._ordered_ids:
            if item_id not in self._completed_set:
                positions[item_id] = len(positions) + 1
        return positions

    def snapshot(self) -> QueueSnapshot:
        with self._lock:
            now = self._clock()
            positions = self._positions()
            rows = tuple(
                QueueRow(
                    id=item_id,
                    priority=self._items[item_id].priority,
                    status=self.status_of(item_id),
                    position=positions.get(item_id),
                )
                for item_id in self._ordered_ids
            )
            next_tick = self._next_due(_TICK)
            completion = self._next_due(_COMPLETE)
            return QueueSnapshot(
                state=self._state,
                running=self.running,
                progress=self.progress(),
                ordered_ids=self._ordered_ids,
                completed=tuple(self._completed),
                in_flight=self._in_flight,
                urgent_count=sum(1 for row in rows if row.priority is Priority.URGENT),
                normal_count=sum(1 for row in rows if row.priority is Priority.NORMAL),
                rows=rows,
                next_tick_in=None if next_tick is None else max(0.0, next_tick - now),
                completion_in=None if completion is None else max(0.0, completion - now),
            )
