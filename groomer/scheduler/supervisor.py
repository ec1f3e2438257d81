"""
Scheduler Supervisor

Runs the periodic pollers on one asyncio event loop. Each poller's blocking
run function executes in a worker thread, and a poller never has more than
one run in flight: a tick that fires while the previous run is still busy
is dropped and counted.
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from ..utils.time_utils import utc_now


logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    One named poller with its own interval and busy guard.

    Usage:
        task = PeriodicTask("email_queue", 120, queue.dispatch_due)
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], Any], run_immediately: bool = True):
        """
        Args:
            name: Task name used in logs and status
            interval_seconds: Seconds between ticks
            func: Blocking callable executed in a worker thread
            run_immediately: Fire the first tick at start instead of after one interval
        """
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive for task {name}")

        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func
        self.run_immediately = run_immediately

        self._lock = asyncio.Lock()
        self._in_flight: Set[asyncio.Task] = set()

        # Stats
        self.runs = 0
        self.failures = 0
        self.dropped_ticks = 0
        self.last_started_at: Optional[datetime] = None
        self.last_finished_at: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def tick(self) -> bool:
        """
        Execute one run unless the previous run is still in flight.

        Returns:
            True if the run happened, False if the tick was dropped
        """
        if self._lock.locked():
            self.dropped_ticks += 1
            logger.warning(f"Task {self.name} still running, dropping tick ({self.dropped_ticks} dropped so far)")
            return False

        async with self._lock:
            self.last_started_at = utc_now()
            try:
                self.last_result = await asyncio.to_thread(self.func)
                self.last_error = None
                self.runs += 1
                logger.debug(f"Task {self.name} finished: {self.last_result}")
            except Exception as e:
                self.failures += 1
                self.last_error = str(e)
                logger.error(f"Task {self.name} failed: {e}", exc_info=True)
            finally:
                self.last_finished_at = utc_now()
        return True

    def fire(self) -> asyncio.Task:
        """Start a tick without waiting for it."""
        task = asyncio.create_task(self.tick(), name=f"{self.name}-tick")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def run(self, stop_event: asyncio.Event):
        """Fire ticks every interval until stop_event is set."""
        logger.info(f"Task {self.name} scheduled every {self.interval_seconds:g}s")

        if not self.run_immediately:
            if await self._wait(stop_event):
                return

        while not stop_event.is_set():
            self.fire()
            if await self._wait(stop_event):
                break

    async def _wait(self, stop_event: asyncio.Event) -> bool:
        """Sleep one interval; True if stopped meanwhile."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def drain(self, timeout: float):
        """Wait for in-flight ticks to finish."""
        if not self._in_flight:
            return
        done, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(f"Task {self.name}: {len(pending)} run(s) did not finish within {timeout:g}s")

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": self.interval_seconds,
            "busy": self.busy,
            "runs": self.runs,
            "failures": self.failures,
            "dropped_ticks": self.dropped_ticks,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_finished_at": self.last_finished_at.isoformat() if self.last_finished_at else None,
            "last_error": self.last_error,
        }


class SchedulerSupervisor:
    """
    Owns the periodic tasks.

    Usage:
        supervisor = SchedulerSupervisor([PeriodicTask(...), ...])
        supervisor.run()  # Blocks and handles signals
    """

    def __init__(self, tasks: Optional[List[PeriodicTask]] = None, shutdown_timeout: float = 30):
        self.tasks: List[PeriodicTask] = list(tasks or [])
        self.shutdown_timeout = shutdown_timeout
        self._stop_event: Optional[asyncio.Event] = None

    def add_task(self, task: PeriodicTask):
        if any(t.name == task.name for t in self.tasks):
            raise ValueError(f"Duplicate task name: {task.name}")
        self.tasks.append(task)

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def start(self):
        """Run all tasks until stop() is called."""
        self._stop_event = asyncio.Event()
        self._install_signal_handlers()

        logger.info(f"Scheduler started with {len(self.tasks)} task(s): {', '.join(t.name for t in self.tasks)}")
        try:
            await asyncio.gather(*(task.run(self._stop_event) for task in self.tasks))
        finally:
            for task in self.tasks:
                await task.drain(self.shutdown_timeout)
            logger.info("Scheduler stopped")

    def stop(self):
        """Ask all tasks to stop after their current run."""
        if self._stop_event is not None and not self._stop_event.is_set():
            logger.info("Stopping scheduler...")
            self._stop_event.set()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows loops and non-main threads do not support signal handlers
                logger.debug(f"Could not install handler for signal {sig}")

    def get_status(self) -> List[Dict[str, Any]]:
        return [task.status() for task in self.tasks]

    def run(self):
        """
        Run the scheduler in the main thread (blocks until stopped).
        """
        try:
            asyncio.run(self.start())
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        except Exception as e:
            logger.error(f"Scheduler failed: {e}", exc_info=True)
            sys.exit(1)
