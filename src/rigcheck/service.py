from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple, Union

from .builder import ProgressiveValidator, findings_by_category
from .data import CatalogSnapshot
from .schemas import CategoryFindings, ValidationResult

logger = logging.getLogger(__name__)

Selection = Mapping[str, Union[str, List[str], None]]


class SnapshotSource(Protocol):
    def snapshot(self) -> CatalogSnapshot: ...


@dataclass(frozen=True)
class ValidationRun:
    generation: int
    result: ValidationResult
    selection: Dict[str, Union[str, List[str], None]] = field(default_factory=dict)


class ValidationScheduler:
    """Debounced, generation-tagged validation for one build.

    Every :meth:`submit` supersedes the pending selection and pushes the
    deadline out by ``debounce_seconds``; a burst of edits inside the window
    yields one evaluation of the last selection. A run that finishes after a
    newer submission is dropped instead of published.
    """

    def __init__(
        self,
        validator: ProgressiveValidator,
        snapshot_source: Callable[[], CatalogSnapshot],
        debounce_seconds: float = 0.3,
        on_result: Optional[Callable[[ValidationRun], None]] = None,
    ):
        self.validator = validator
        self.snapshot_source = snapshot_source
        self.debounce_seconds = max(0.0, debounce_seconds)
        self.on_result = on_result
        self._cond = threading.Condition()
        self._pending: Optional[Tuple[int, Dict]] = None
        self._deadline = 0.0
        self._running = False
        self._latest_generation = 0
        self._published: Optional[ValidationRun] = None
        self._closed = False
        self._thread: Optional[threading.Thread] = None
        self.evaluations = 0
        self.dropped = 0

    def submit(self, selection: Selection) -> int:
        with self._cond:
            if self._closed:
                raise RuntimeError("validation scheduler is closed")
            # issued under the lock so the recorded generation never goes backwards
            generation = self.validator.next_generation()
            self._pending = (generation, dict(selection))
            self._latest_generation = generation
            self._deadline = time.monotonic() + self.debounce_seconds
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name="rigcheck-validation", daemon=True)
                self._thread.start()
            self._cond.notify_all()
        logger.info("validation generation %d scheduled", generation)
        return generation

    @property
    def latest_generation(self) -> int:
        with self._cond:
            return self._latest_generation

    def latest(self) -> Optional[ValidationRun]:
        with self._cond:
            return self._published

    def is_idle(self) -> bool:
        with self._cond:
            return self._pending is None and not self._running

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._pending is None and not self._running, timeout)

    def cancel(self) -> None:
        """Forget the pending selection; a run already in flight will be dropped."""
        with self._cond:
            self._pending = None
            self._latest_generation = self.validator.next_generation()
            self._cond.notify_all()

    def close(self, timeout: Optional[float] = 1.0) -> None:
        with self._cond:
            self._closed = True
            self._pending = None
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._closed and self._pending is None:
                    self._cond.wait()
                if self._closed:
                    return
                remaining = self._deadline - time.monotonic()
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
                generation, selection = self._pending
                self._pending = None
                self._running = True

            result: Optional[ValidationResult] = None
            try:
                result = self.validator.validate(self.snapshot_source(), selection)
            except Exception:
                logger.exception("validation generation %d failed", generation)

            run: Optional[ValidationRun] = None
            with self._cond:
                self._running = False
                self.evaluations += 1
                if result is not None:
                    if generation == self._latest_generation:
                        run = ValidationRun(generation=generation, result=result, selection=selection)
                        self._published = run
                    else:
                        self.dropped += 1
                        logger.warning(
                            "dropping stale validation generation %d (latest %d)",
                            generation,
                            self._latest_generation,
                        )
                self._cond.notify_all()
            if run is not None:
                logger.info("validation generation %d published: %s", generation, run.result.status.value)
                if self.on_result is not None:
                    try:
                        self.on_result(run)
                    except Exception:
                        logger.exception("result callback failed for generation %d", generation)


@dataclass
class _Session:
    scheduler: ValidationScheduler
    last_seen: float = 0.0


class ValidationService:
    def __init__(
        self,
        repository: SnapshotSource,
        validator: ProgressiveValidator | None = None,
        debounce_seconds: float = 0.3,
        session_ttl_seconds: int | None = 3600,
        session_cleanup_interval_seconds: int = 60,
    ):
        self.repository = repository
        self.validator = validator or ProgressiveValidator()
        self.debounce_seconds = debounce_seconds
        self.session_ttl_seconds = max(0, int(session_ttl_seconds or 0))
        self.session_cleanup_interval_seconds = max(1, int(session_cleanup_interval_seconds))
        self.sessions: Dict[str, _Session] = {}
        self._sessions_lock = threading.Lock()
        self._cleanup_lock = threading.Lock()
        self._last_cleanup_monotonic = 0.0

    def validate_now(self, selection: Selection) -> ValidationResult:
        return self.validator.validate(self.repository.snapshot(), selection)

    def breakdown(self, result: ValidationResult) -> List[CategoryFindings]:
        snapshot = self.repository.snapshot()
        top_level = [c for c in snapshot.categories if not c.is_subcategory]
        return findings_by_category(result, top_level)

    def submit(self, session_id: str, selection: Selection) -> int:
        session = self._get_session(session_id)
        generation = session.scheduler.submit(selection)
        self._cleanup_idle_sessions()
        return generation

    def latest(self, session_id: str) -> Optional[ValidationRun]:
        with self._sessions_lock:
            session = self.sessions.get(session_id)
        if session is None:
            return None
        return session.scheduler.latest()

    def wait_idle(self, session_id: str, timeout: Optional[float] = None) -> bool:
        with self._sessions_lock:
            session = self.sessions.get(session_id)
        if session is None:
            return True
        return session.scheduler.wait_idle(timeout)

    def close_session(self, session_id: str) -> None:
        with self._sessions_lock:
            session = self.sessions.pop(session_id, None)
        if session is not None:
            session.scheduler.close()

    def close(self) -> None:
        with self._sessions_lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
        for session in sessions:
            session.scheduler.close()

    def stats(self) -> dict:
        with self._sessions_lock:
            schedulers = [s.scheduler for s in self.sessions.values()]
        evaluations = sum(s.evaluations for s in schedulers)
        dropped = sum(s.dropped for s in schedulers)
        return {
            "active_sessions": len(schedulers),
            "evaluations": evaluations,
            "dropped_stale_results": dropped,
            "current_generation": self.validator.current_generation,
        }

    def _get_session(self, session_id: str) -> _Session:
        with self._sessions_lock:
            session = self.sessions.get(session_id)
            if session is None:
                scheduler = ValidationScheduler(
                    self.validator,
                    self.repository.snapshot,
                    debounce_seconds=self.debounce_seconds,
                )
                session = _Session(scheduler=scheduler)
                self.sessions[session_id] = session
            session.last_seen = time.monotonic()
            return session

    def _cleanup_idle_sessions(self, force: bool = False) -> None:
        if self.session_ttl_seconds <= 0:
            return
        now = time.monotonic()
        if not force and (now - self._last_cleanup_monotonic) < self.session_cleanup_interval_seconds:
            return
        with self._cleanup_lock:
            now = time.monotonic()
            if not force and (now - self._last_cleanup_monotonic) < self.session_cleanup_interval_seconds:
                return
            expire_before = now - float(self.session_ttl_seconds)
            with self._sessions_lock:
                stale = [
                    sid
                    for sid, session in self.sessions.items()
                    if session.last_seen < expire_before and session.scheduler.is_idle()
                ]
                removed = [self.sessions.pop(sid) for sid in stale]
            for session in removed:
                session.scheduler.close()
            if stale:
                logger.info("evicted %d idle build sessions", len(stale))
            self._last_cleanup_monotonic = now
