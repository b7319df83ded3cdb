"""
Deadline guard for Lambda invocations.

Races a unit of work against the Lambda's remaining execution time so the
custom resource can still report back to CloudFormation before it is killed.
On expiry, registered child processes are terminated and cooperative work is
told to stop; anything that cannot be interrupted is abandoned.
"""

import subprocess
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, TypeVar

try:  # pragma: no cover
    from utils.config import get_deadline_margin_ms
    from utils.errors import DeadlineExceededError
    from utils.logging import get_logger
except ModuleNotFoundError:  # pragma: no cover
    from .config import get_deadline_margin_ms
    from .errors import DeadlineExceededError
    from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class DeadlineGuard:
    """
    Run work with a timeout of (remaining Lambda time - margin).

    Example:
        guard = DeadlineGuard(context)
        physical_id = guard.run(deploy_spa, "Create", config, guard=guard)
    """

    def __init__(self, context: Any, margin_ms: Optional[int] = None) -> None:
        self.context = context
        self.margin_ms = get_deadline_margin_ms() if margin_ms is None else margin_ms
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._processes: List[subprocess.Popen] = []

    def budget_seconds(self) -> float:
        remaining_ms = self.context.get_remaining_time_in_millis()
        return (remaining_ms - self.margin_ms) / 1000.0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_cancelled(self) -> None:
        """Raise if the deadline already fired; called between units of work."""
        if self._cancelled.is_set():
            raise DeadlineExceededError()

    def register_process(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes.append(process)
        # Deadline fired while the process was starting
        if self._cancelled.is_set():
            self._terminate(process)

    def unregister_process(self, process: subprocess.Popen) -> None:
        with self._lock:
            if process in self._processes:
                self._processes.remove(process)

    def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run fn on a worker thread and wait until it settles or the deadline fires.

        Returns:
            Whatever fn returns

        Raises:
            DeadlineExceededError: If the budget elapses first
            Exception: Anything fn raises
        """
        budget = self.budget_seconds()
        if budget <= 0:
            logger.error("No execution time left before starting", budgetSeconds=budget)
            self.cancel()
            raise DeadlineExceededError()

        future: "Future[T]" = Future()

        def _worker() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args, **kwargs))
            except BaseException as e:
                future.set_exception(e)

        # Daemon so an abandoned worker never holds the invocation open
        thread = threading.Thread(target=_worker, name="deadline-guarded-work", daemon=True)
        thread.start()

        done = threading.Event()
        future.add_done_callback(lambda _: done.set())
        if not done.wait(timeout=budget):
            logger.error("Deadline exceeded, abandoning work", budgetSeconds=budget)
            self.cancel()
            raise DeadlineExceededError()

        return future.result()

    def cancel(self) -> None:
        """Mark the work cancelled and terminate any registered child processes."""
        self._cancelled.set()
        with self._lock:
            processes = list(self._processes)
        for process in processes:
            self._terminate(process)

    @staticmethod
    def _terminate(process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        logger.warning("Terminating child process", pid=process.pid)
        try:
            process.terminate()
        except ProcessLookupError:
            pass
