"""envtop - Textual inspector for an Environment."""

import logging
import sys
from queue import Empty, Queue

from rich.markup import escape
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Static
from textual.widgets.data_table import RowDoesNotExist

from envfacade.environment import Environment
from envfacade.models import EnvironmentScope, HostSnapshot
from envfacade.monitor import EnvironmentMonitor, EnvironmentSnapshot
from envfacade.system import SystemEnvironment


def format_bytes(size: int) -> str:
    """Format a byte count like 512B, 4.0K or 1.5G."""
    if size < 1024:
        return f"{size}B"
    value = float(size)
    for unit in "KMGT":
        value /= 1024
        if value < 1024 or unit == "T":
            return f"{value:.1f}{unit}"


def format_uptime(seconds: float) -> str:
    """Format an uptime like 'N days, HH:MM:SS'."""
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class HostSummary(Static):
    """Header widget showing host identity and runtime facts."""

    DEFAULT_CSS = """
    HostSummary {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HostSummary."""
        super().__init__(*args, **kwargs)
        self._host: HostSnapshot | None = None
        self._peak_working_set: int = 0

    @property
    def host(self) -> HostSnapshot | None:
        """Get the host snapshot on display."""
        return self._host

    def compose(self) -> ComposeResult:
        """Compose the header layout."""
        yield Horizontal(
            Static(self._get_identity_info(), id="identity-info"),
            Static(self._get_runtime_info(), id="runtime-info"),
        )

    def update_host(self, host: HostSnapshot, peak_working_set: int = 0) -> None:
        """Update the display from a host snapshot."""
        self._host = host
        self._peak_working_set = max(peak_working_set, host.working_set)
        self._refresh_display()

    def _refresh_display(self) -> None:
        try:
            self.query_one("#identity-info", Static).update(self._get_identity_info())
            self.query_one("#runtime-info", Static).update(self._get_runtime_info())
        except NoMatches:
            pass  # Not mounted yet

    def _get_identity_info(self) -> str:
        host = self._host
        if host is None:
            return "Loading host info..."
        bits = "64-bit" if host.is_64bit_os else "32-bit"
        process_bits = "64-bit" if host.is_64bit_process else "32-bit"
        return (
            f"Host: [b]{escape(host.machine_name)}[/b] ({escape(host.user_domain_name)})\n"
            f"User: {escape(host.user_name)}\n"
            f"OS:   {escape(host.os_version.version_string)}\n"
            f"Arch: {bits} OS, {process_bits} process"
        )

    def _get_runtime_info(self) -> str:
        host = self._host
        if host is None:
            return "Loading runtime info..."
        return (
            f"CPUs: {host.processor_count}  Page: {format_bytes(host.page_size)}\n"
            f"PID:  {host.process_id}\n"
            f"RSS:  {format_bytes(host.working_set)} "
            f"(peak {format_bytes(self._peak_working_set)})\n"
            f"Uptime: {format_uptime(host.tick_count / 1000)}"
        )


class VariableTable(Container):
    """Container for the environment variable table."""

    DEFAULT_CSS = """
    VariableTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize VariableTable."""
        super().__init__(*args, **kwargs)
        self._current_names: set[str] = set()
        self._scope: EnvironmentScope = EnvironmentScope.PROCESS

    @property
    def scope(self) -> EnvironmentScope:
        """Get the scope on display."""
        return self._scope

    def cycle_scope(self) -> EnvironmentScope:
        """Switch to the next scope, empty the table and return the scope."""
        scopes = list(EnvironmentScope)
        self._scope = scopes[(scopes.index(self._scope) + 1) % len(scopes)]
        self.border_title = self._title()
        try:
            self.query_one("#variable-table", DataTable).clear()
        except NoMatches:
            pass
        self._current_names = set()
        return self._scope

    def _title(self) -> str:
        return f"Variables ({self._scope.value})"

    def compose(self) -> ComposeResult:
        """Compose the variable table."""
        yield DataTable(id="variable-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        self.border_title = self._title()
        table = self.query_one("#variable-table", DataTable)
        table.cursor_type = "row"
        table.add_column("NAME", key="name", width=32)
        table.add_column("VALUE", key="value")

    def update_variables(self, variables: dict[str, str]) -> None:
        """
        Update the table with new data.

        Rows are keyed by variable name: existing rows get update_cell, vanished
        ones are removed and new ones appended.
        """
        table = self.query_one("#variable-table", DataTable)
        new_names = set(variables)

        for name in self._current_names - new_names:
            try:
                table.remove_row(name)
            except RowDoesNotExist:
                pass

        for name in sorted(variables):
            value = Text(variables[name], no_wrap=True)
            if name in self._current_names:
                table.update_cell(name, "value", value)
            else:
                table.add_row(Text(name), value, key=name)

        self._current_names = new_names


class EnvtopApp(App):
    """Main envtop application."""

    TITLE = "envtop"
    SUB_TITLE = "Environment Inspector"

    CSS = """
    Screen {
        layout: vertical;
    }

    #host-summary {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #identity-info {
        width: 1fr;
        padding-right: 2;
    }

    #runtime-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "scope", "Scope"),
        ("r", "refresh", "Refresh"),
    ]

    def __init__(self, environment: Environment | None = None, poll_rate: float = 2.0) -> None:
        """
        Initialize the EnvtopApp.

        Args:
            environment: Environment to inspect. Default SystemEnvironment().
            poll_rate: Seconds between polls.
        """
        super().__init__()
        self._environment = environment if environment is not None else SystemEnvironment()
        self._update_queue: Queue[EnvironmentSnapshot] = Queue()
        self._monitor = EnvironmentMonitor(self._environment, self._update_queue, poll_rate=poll_rate)

    @property
    def environment(self) -> Environment:
        """Get the Environment being inspected."""
        return self._environment

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HostSummary(id="host-summary")
        yield VariableTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop the monitor when the app goes away without action_quit."""
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: EnvironmentSnapshot) -> None:
        """Update the UI with a snapshot."""
        try:
            header = self.query_one("#host-summary", HostSummary)
            variable_table = self.query_one(VariableTable)
        except NoMatches:
            return  # Shutting down

        history = self._monitor.get_working_set_history()
        header.update_host(snapshot.host, peak_working_set=max(history, default=0))

        # Snapshots taken before a scope switch are stale
        if snapshot.scope is variable_table.scope:
            variable_table.update_variables(snapshot.variables)

    def action_scope(self) -> None:
        """Cycle through process, user and machine scope."""
        variable_table = self.query_one(VariableTable)
        new_scope = variable_table.cycle_scope()
        self._monitor.scope = new_scope
        self._monitor.poll_now()
        self.notify(f"Scope: {new_scope.value.upper()}")

    def action_refresh(self) -> None:
        """Poll immediately instead of waiting for the next tick."""
        self._monitor.poll_now()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for envtop."""
    logging.basicConfig(level=logging.INFO, handlers=[TextualHandler()])
    environment = SystemEnvironment()
    app = EnvtopApp(environment)
    app.run()
    sys.exit(environment.get_exit_code())


if __name__ == "__main__":
    main()
