import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .logging import log_event


@dataclass
class ScheduledJob:
    name: str
    interval_seconds: float
    func: Callable[[], object]
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class JobScheduler:
    """Runs each job on its own daemon thread at a fixed interval.

    A job never overlaps with itself: if the previous run is still going when
    the next tick arrives, the tick is skipped. ``stop`` wakes every thread and
    waits for in-flight runs to finish.
    """

    def __init__(self, initial_delay: float = 10.0) -> None:
        self._jobs: Dict[str, ScheduledJob] = {}
        self._threads: List[threading.Thread] = []
        self._stop = threading.Event()
        self._initial_delay = initial_delay

    def add_job(self, name: str, interval_seconds: float, func: Callable[[], object]) -> None:
        if name in self._jobs:
            raise ValueError(f"job {name} already registered")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._jobs[name] = ScheduledJob(name=name, interval_seconds=interval_seconds, func=func)

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def run_once(self, name: str) -> bool:
        """Run ``name`` now unless it is already running; returns whether it ran."""
        job = self._jobs[name]
        if not job._lock.acquire(blocking=False):
            log_event("warning", "scheduler.skip_overlap", job=name)
            return False
        try:
            job.func()
        except Exception as exc:
            log_event("error", "scheduler.job_failed", job=name, error=str(exc))
        finally:
            job._lock.release()
        return True

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._loop, args=(job,), name=f"job-{job.name}", daemon=True)
            for job in self._jobs.values()
        ]
        for t in self._threads:
            t.start()
        log_event("info", "scheduler.started", jobs=self.job_names)

    def stop(self, timeout: Optional[float] = 30.0) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout)
        self._threads = []
        log_event("info", "scheduler.stopped")

    def _loop(self, job: ScheduledJob) -> None:
        if self._stop.wait(self._initial_delay):
            return
        while not self._stop.is_set():
            self.run_once(job.name)
            if self._stop.wait(job.interval_seconds):
                return
