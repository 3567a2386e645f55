from rich.text import Text
from textual.app import ComposeResult
from textual.binding import Binding
from textual.screen import Screen
from textual.widgets import DataTable, Footer, Header, LoadingIndicator
from textual.worker import Worker
from textual.containers import Container

from lbfleet.errors import LBFleetError
from lbfleet.inventory import FleetRegistry
from lbfleet.models import ServiceState, StatusRow

AUTO_REFRESH_SECONDS = 30


def _state_text(state: ServiceState) -> Text:
    if state is ServiceState.ACTIVE:
        return Text("● active", style="bold green")
    return Text("✖ failed", style="bold red")


class MainScreen(Screen):
    BINDINGS = [
        Binding("r", "refresh", "Refresh"),
        Binding("p", "push", "Push"),
        Binding("q", "quit", "Quit"),
    ]

    CSS = """
    #loading {
        align: center middle;
    }
    #table-container {
        height: 1fr;
    }
    DataTable {
        height: 1fr;
    }
    """

    def __init__(self, registry: FleetRegistry):
        super().__init__()
        self.registry = registry
        self._rows: list[StatusRow] = []
        self._push_worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(LoadingIndicator(), id="loading")
        yield Container(DataTable(id="status-table"), id="table-container")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#status-table", DataTable)
        settings = self.app.settings
        table.add_columns("#", "Host", "Role", settings.frontend_service, settings.failover_service)
        table.cursor_type = "row"
        self.query_one("#table-container").display = False
        self.run_worker(self._refresh_statuses(), exclusive=True)
        self._auto_refresh_timer = self.set_interval(
            AUTO_REFRESH_SECONDS, self._auto_refresh, pause=False,
        )

    async def _refresh_statuses(self) -> None:
        self._rows = await self.app.collector.collect(self.registry)
        self._populate_table()

    def _populate_table(self) -> None:
        table = self.query_one("#status-table", DataTable)
        table.clear()

        for row in self._rows:
            host = self.registry.host_at(row.index)
            role = Text("active", style="bold") if host.active else Text("standby", style="dim")
            table.add_row(
                str(row.index),
                row.address,
                role,
                _state_text(row.frontend),
                _state_text(row.failover),
                key=row.address,
            )

        self.query_one("#loading").display = False
        self.query_one("#table-container").display = True

    def _auto_refresh(self) -> None:
        self.run_worker(self._refresh_statuses(), exclusive=True)

    def action_refresh(self) -> None:
        self.run_worker(self._refresh_statuses(), exclusive=True)

    def action_quit(self) -> None:
        self.app.exit()

    def action_push(self) -> None:
        from lbfleet.screens.confirm import PushConfirmScreen

        # A second push must not cancel the one already writing to the hosts
        if self._push_worker is not None and not self._push_worker.is_finished:
            self.notify("A push is already running", severity="warning", timeout=3)
            return

        targets = [h for h in self.registry if not h.active]
        skipped = [h for h in self.registry if h.active]

        def on_confirm(confirmed: bool) -> None:
            if confirmed:
                self._push_worker = self.run_worker(self._execute_push(), group="push")

        self.app.push_screen(PushConfirmScreen(targets, skipped), callback=on_confirm)

    async def _execute_push(self) -> None:
        self._auto_refresh_timer.pause()
        try:
            report = await self.app.pusher.push(self.registry)
        except LBFleetError as exc:
            self.notify(str(exc), severity="error", timeout=8)
        else:
            pushed = ", ".join(h.address for h in report.pushed) or "no hosts"
            self.notify(f"Pushed to {pushed}", timeout=5)
        finally:
            self._auto_refresh_timer.resume()
        await self._refresh_statuses()
