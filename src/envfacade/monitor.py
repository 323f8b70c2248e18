"""Background polling of an Environment for envtop."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from queue import Queue

from envfacade.environment import Environment
from envfacade.models import EnvironmentScope, HostSnapshot
from envfacade.variables import coerce_scope

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EnvironmentSnapshot:
    """Snapshot of host facts and the variables of one scope."""

    host: HostSnapshot
    scope: EnvironmentScope
    variables: dict[str, str]


class EnvironmentMonitor:
    """
    Polls an Environment from a daemon thread.

    Each poll pushes an EnvironmentSnapshot to a thread-safe Queue. A poll
    that raises is logged and the loop carries on with the next one.
    """

    def __init__(
        self,
        environment: Environment,
        update_queue: Queue[EnvironmentSnapshot],
        poll_rate: float = 2.0,
        scope: EnvironmentScope = EnvironmentScope.PROCESS,
    ) -> None:
        """
        Initialize the EnvironmentMonitor.

        Args:
            environment: Environment to poll.
            update_queue: Thread-safe queue to push updates to.
            poll_rate: How often to poll (in seconds). Default 2.0s.
            scope: Which variables to collect. Default process scope.
        """
        self._environment = environment
        self._queue = update_queue
        self._poll_rate = poll_rate
        self._scope = coerce_scope(scope)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._working_set_history: deque[int] = deque(maxlen=60)

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def scope(self) -> EnvironmentScope:
        """Get the scope whose variables are collected."""
        return self._scope

    @scope.setter
    def scope(self, value: EnvironmentScope) -> None:
        """Switch scope; takes effect on the next poll."""
        self._scope = coerce_scope(value)

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="EnvironmentMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_now(self) -> None:
        """Cut the current wait short so the next poll happens immediately."""
        self._wake_event.set()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_snapshot())
            except Exception:
                logger.exception("Polling the environment failed")

            # Wait for poll_rate seconds, a poll_now() or a stop()
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()

    def collect_snapshot(self) -> EnvironmentSnapshot:
        """Collect a snapshot of the host and the current scope."""
        scope = self._scope
        host = self._environment.snapshot_host()
        self._working_set_history.append(host.working_set)
        return EnvironmentSnapshot(
            host=host,
            scope=scope,
            variables=self._environment.get_environment_variables(scope),
        )

    def get_working_set_history(self) -> list[int]:
        """Get the recent working set samples, oldest first."""
        return list(self._working_set_history)
