"""
Loading Timer - free-loading window and demurrage

Tracks the contractual free-loading window of a ride and the per-minute
demurrage fee charged once it is exceeded.

Status Flow:
    NOT_STARTED -> ACTIVE     ("start loading", stamps loading_start_time once)
    ACTIVE      -> COMPLETED  ("stop loading", freezes demurrage_fee once)

Duplicate start and duplicate stop are no-ops. After COMPLETED nothing is
recomputed: every read returns the frozen snapshot.

Time comes from a Clock port so tests drive the timer with ManualClock
instead of waiting on the wall clock:

    clock = ManualClock()
    timer = LoadingTimer(LoadingStatus("ride-1", loading_window_min=30, demurrage_rate=310), clock)
    timer.start()
    clock.advance(35 * 60)
    timer.stop().demurrage_fee   # 5 * 310 = 1550
"""

import asyncio
import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_LOADING_WINDOW_MIN = 30


# ============================================================================
# STATE
# ============================================================================

class LoadingPhase(str, Enum):
    """Phase of the loading session of a ride."""
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class LoadingStatus:
    """Loading state as persisted on the ride."""
    ride_id: str
    loading_window_min: int = DEFAULT_LOADING_WINDOW_MIN
    demurrage_rate: int = 0
    phase: LoadingPhase = LoadingPhase.NOT_STARTED
    loading_start_time: Optional[datetime] = None
    loading_end_time: Optional[datetime] = None
    demurrage_fee: Optional[int] = None
    overtime_notified: bool = False

    def __post_init__(self):
        if self.loading_window_min < 0:
            raise ValueError("loading_window_min must be >= 0")
        if self.demurrage_rate < 0:
            raise ValueError("demurrage_rate must be >= 0")
        self.phase = LoadingPhase(self.phase)

    def to_dict(self) -> dict:
        return {
            "ride_id": self.ride_id,
            "status": self.phase.value,
            "loading_window_min": self.loading_window_min,
            "demurrage_rate": self.demurrage_rate,
            "loading_start_time": self.loading_start_time.isoformat() if self.loading_start_time else None,
            "loading_end_time": self.loading_end_time.isoformat() if self.loading_end_time else None,
            "demurrage_fee": self.demurrage_fee,
            "overtime_notified": self.overtime_notified,
        }


@dataclass(frozen=True)
class LoadingSnapshot:
    """Read model shown to both parties while loading."""
    ride_id: str
    phase: LoadingPhase
    loading_window_min: int
    demurrage_rate: int
    elapsed_sec: int
    remaining_sec: int
    progress: float
    is_overtime: bool
    overtime_sec: int
    overtime_minutes: int
    current_demurrage: int
    demurrage_fee: Optional[int]
    time_display: str
    urgency: str

    def to_dict(self) -> dict:
        return {
            "ride_id": self.ride_id,
            "status": self.phase.value,
            "loading_window_min": self.loading_window_min,
            "demurrage_rate": self.demurrage_rate,
            "elapsed_sec": self.elapsed_sec,
            "remaining_sec": self.remaining_sec,
            "progress": self.progress,
            "is_overtime": self.is_overtime,
            "overtime_sec": self.overtime_sec,
            "overtime_minutes": self.overtime_minutes,
            "current_demurrage": self.current_demurrage,
            "demurrage_fee": self.demurrage_fee,
            "time_display": self.time_display,
            "urgency": self.urgency,
        }


def format_timer(remaining_sec: int, overtime_sec: int) -> str:
    """MM:SS while inside the window, +M:SS once overtime."""
    if remaining_sec > 0:
        mins, secs = divmod(remaining_sec, 60)
        return f"{mins:02d}:{secs:02d}"
    mins, secs = divmod(overtime_sec, 60)
    return f"+{mins}:{secs:02d}"


def urgency_for(progress: float, is_overtime: bool) -> str:
    if is_overtime or progress < 0.25:
        return "critical"
    if progress < 0.5:
        return "warning"
    return "normal"


def compute_snapshot(status: LoadingStatus, now: datetime) -> LoadingSnapshot:
    """
    Evaluate a loading status at a given instant.

    NOT_STARTED yields a full window; ACTIVE is computed from
    loading_start_time. Overtime is billed per whole minute past the window.
    """
    window_sec = status.loading_window_min * 60

    if status.phase == LoadingPhase.NOT_STARTED or status.loading_start_time is None:
        elapsed_sec = 0
    else:
        elapsed_sec = max(0, math.floor((now - status.loading_start_time).total_seconds()))

    remaining_sec = max(0, window_sec - elapsed_sec)
    if window_sec > 0:
        progress = min(1.0, max(0.0, remaining_sec / window_sec))
    else:
        progress = 0.0

    started = status.phase != LoadingPhase.NOT_STARTED
    is_overtime = started and remaining_sec == 0
    overtime_sec = max(0, elapsed_sec - window_sec) if started else 0
    overtime_minutes = overtime_sec // 60

    return LoadingSnapshot(
        ride_id=status.ride_id,
        phase=status.phase,
        loading_window_min=status.loading_window_min,
        demurrage_rate=status.demurrage_rate,
        elapsed_sec=elapsed_sec,
        remaining_sec=remaining_sec,
        progress=progress,
        is_overtime=is_overtime,
        overtime_sec=overtime_sec,
        overtime_minutes=overtime_minutes,
        current_demurrage=overtime_minutes * status.demurrage_rate,
        demurrage_fee=status.demurrage_fee,
        time_display=format_timer(remaining_sec, overtime_sec),
        urgency=urgency_for(progress, is_overtime),
    )


# ============================================================================
# CLOCK PORT
# ============================================================================

TickCallback = Callable[[], None]


class Clock(Protocol):
    def now(self) -> datetime: ...

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        """Call callback on every tick; returns an unsubscribe function."""
        ...


class SystemClock:
    """Wall clock that ticks from an asyncio task. subscribe() needs a running loop."""

    def __init__(self, interval_s: float = 1.0):
        self.interval_s = interval_s

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(callback))
        return task.cancel

    async def _run(self, callback: TickCallback) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                callback()
            except Exception:
                logger.exception("[LOADING] Tick callback failed")


class ManualClock:
    """Clock advanced explicitly by the caller. Used by tests and replays."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)
        self._subscribers: Dict[int, TickCallback] = {}
        self._next_id = 0

    def now(self) -> datetime:
        return self._now

    def subscribe(self, callback: TickCallback) -> Callable[[], None]:
        sub_id = self._next_id
        self._next_id += 1
        self._subscribers[sub_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(sub_id, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def advance(self, seconds: float, step: Optional[float] = None) -> None:
        """
        Move time forward and fire ticks.

        With step, one tick fires per step (the last one may be shorter);
        without it, a single tick fires at the end.
        """
        if step is None or step <= 0:
            step = seconds
        remaining = seconds
        while remaining > 0:
            delta = min(step, remaining)
            self._now += timedelta(seconds=delta)
            remaining -= delta
            for callback in list(self._subscribers.values()):
                callback()


# ============================================================================
# PERSISTENCE PORT
# ============================================================================

class LoadingStore(Protocol):
    def load(self, ride_id: str) -> Optional[LoadingStatus]: ...

    def save(self, status: LoadingStatus) -> None: ...


class InMemoryLoadingStore:
    """Process-local store. Keeps copies so callers cannot mutate saved state."""

    def __init__(self):
        self._statuses: Dict[str, LoadingStatus] = {}

    def load(self, ride_id: str) -> Optional[LoadingStatus]:
        status = self._statuses.get(ride_id)
        return replace(status) if status else None

    def save(self, status: LoadingStatus) -> None:
        self._statuses[status.ride_id] = replace(status)


# ============================================================================
# STATE MACHINE
# ============================================================================

OvertimeCallback = Callable[[LoadingSnapshot], None]


class LoadingTimer:
    """
    Loading session of one ride.

    Ticks re-evaluate the live snapshot and raise the overtime edge event
    once. stop() is the single point that freezes demurrage_fee.
    """

    def __init__(
        self,
        status: LoadingStatus,
        clock: Clock,
        store: Optional[LoadingStore] = None,
        on_overtime: Optional[OvertimeCallback] = None,
    ):
        self._status = replace(status)
        self._clock = clock
        self._store = store
        self._on_overtime = on_overtime
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._frozen: Optional[LoadingSnapshot] = None
        self._last: Optional[LoadingSnapshot] = None

        if self._status.phase == LoadingPhase.COMPLETED:
            self._frozen = self._freeze_from_status()

    @property
    def ride_id(self) -> str:
        return self._status.ride_id

    @property
    def phase(self) -> LoadingPhase:
        return self._status.phase

    @property
    def status(self) -> LoadingStatus:
        return replace(self._status)

    @property
    def overtime_notified(self) -> bool:
        return self._status.overtime_notified

    @property
    def is_ticking(self) -> bool:
        return self._unsubscribe is not None

    @property
    def last_snapshot(self) -> Optional[LoadingSnapshot]:
        """Snapshot from the most recent tick, start or stop."""
        return self._last

    def start(self) -> LoadingSnapshot:
        with self._lock:
            if self._status.phase != LoadingPhase.NOT_STARTED:
                logger.info(
                    f"[LOADING] Ride {self.ride_id} start ignored, already {self._status.phase.value}"
                )
                return self._read()

            self._status.phase = LoadingPhase.ACTIVE
            self._status.loading_start_time = self._clock.now()
            self._persist()
            self._subscribe()

            logger.info(
                f"[LOADING] Ride {self.ride_id} loading started, "
                f"{self._status.loading_window_min} min free, {self._status.demurrage_rate}/min after"
            )
            self._last = compute_snapshot(self._status, self._clock.now())
            return self._last

    def resume(self) -> None:
        """Resume ticking for a session rehydrated in the ACTIVE phase."""
        with self._lock:
            if self._status.phase == LoadingPhase.ACTIVE:
                self._subscribe()

    def tick(self) -> LoadingSnapshot:
        with self._lock:
            if self._status.phase != LoadingPhase.ACTIVE:
                return self._read()

            snapshot = compute_snapshot(self._status, self._clock.now())
            self._last = snapshot
            fire = snapshot.is_overtime and not self._status.overtime_notified
            if fire:
                self._status.overtime_notified = True
                self._persist()

        if fire:
            logger.warning(
                f"[LOADING] Ride {self.ride_id} exceeded free loading window of "
                f"{snapshot.loading_window_min} min, demurrage {snapshot.demurrage_rate}/min"
            )
            if self._on_overtime is not None:
                self._on_overtime(snapshot)
        return snapshot

    def stop(self) -> LoadingSnapshot:
        with self._lock:
            if self._status.phase == LoadingPhase.COMPLETED:
                logger.info(f"[LOADING] Ride {self.ride_id} stop ignored, already completed")
                return self._frozen
            if self._status.phase == LoadingPhase.NOT_STARTED:
                logger.info(f"[LOADING] Ride {self.ride_id} stop ignored, loading never started")
                return self._read()

            stopped_at = self._clock.now()
            final = compute_snapshot(self._status, stopped_at)

            self._status.phase = LoadingPhase.COMPLETED
            self._status.loading_end_time = stopped_at
            self._status.demurrage_fee = final.current_demurrage
            self._unsubscribe_ticks()
            self._persist()

            self._frozen = replace(
                final,
                phase=LoadingPhase.COMPLETED,
                demurrage_fee=final.current_demurrage,
            )
            self._last = self._frozen

            logger.info(
                f"[LOADING] Ride {self.ride_id} loading completed after {final.elapsed_sec}s, "
                f"demurrage fee {final.current_demurrage}"
            )
            return self._frozen

    def snapshot(self) -> LoadingSnapshot:
        with self._lock:
            return self._read()

    def _read(self) -> LoadingSnapshot:
        if self._frozen is not None:
            return self._frozen
        return compute_snapshot(self._status, self._clock.now())

    def _freeze_from_status(self) -> LoadingSnapshot:
        end = self._status.loading_end_time or self._status.loading_start_time or self._clock.now()
        evaluated = compute_snapshot(self._status, end)
        fee = self._status.demurrage_fee
        if fee is None:
            fee = evaluated.current_demurrage
            self._status.demurrage_fee = fee
        return replace(evaluated, demurrage_fee=fee)

    def _subscribe(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._clock.subscribe(self.tick)

    def _unsubscribe_ticks(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _persist(self) -> None:
        if self._store is not None:
            self._store.save(self._status)


class LoadingTimerManager:
    """
    Keeps one LoadingTimer per in-progress ride, rehydrating from the store on demand.

    Completed sessions are dropped from memory once frozen; reads of them are
    served from the store.
    """

    def __init__(
        self,
        clock: Clock,
        store: Optional[LoadingStore] = None,
        on_overtime: Optional[OvertimeCallback] = None,
    ):
        self.clock = clock
        self.store = store if store is not None else InMemoryLoadingStore()
        self._on_overtime = on_overtime
        self._timers: Dict[str, LoadingTimer] = {}

    def get(self, ride_id: str) -> Optional[LoadingTimer]:
        timer = self._timers.get(ride_id)
        if timer is not None:
            return timer
        status = self.store.load(ride_id)
        if status is None:
            return None
        if status.phase == LoadingPhase.COMPLETED:
            return LoadingTimer(status, self.clock, store=self.store, on_overtime=self._on_overtime)
        timer = self._make_timer(status)
        if status.phase == LoadingPhase.ACTIVE:
            timer.resume()
        return timer

    def start(
        self,
        ride_id: str,
        loading_window_min: int = DEFAULT_LOADING_WINDOW_MIN,
        demurrage_rate: int = 0,
    ) -> LoadingSnapshot:
        """Start loading; window and rate only apply the first time."""
        timer = self.get(ride_id)
        if timer is None:
            status = LoadingStatus(
                ride_id=ride_id,
                loading_window_min=loading_window_min,
                demurrage_rate=demurrage_rate,
            )
            timer = self._make_timer(status)
        return timer.start()

    def stop(self, ride_id: str) -> Optional[LoadingSnapshot]:
        timer = self.get(ride_id)
        if timer is None:
            return None
        snapshot = timer.stop()
        if timer.phase == LoadingPhase.COMPLETED:
            self._timers.pop(ride_id, None)
        return snapshot

    @property
    def active_count(self) -> int:
        return len(self._timers)

    def _make_timer(self, status: LoadingStatus) -> LoadingTimer:
        timer = LoadingTimer(status, self.clock, store=self.store, on_overtime=self._on_overtime)
        self._timers[status.ride_id] = timer
        return timer
