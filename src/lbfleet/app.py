from textual.app import App

from lbfleet.config import Settings
from lbfleet.inventory import FleetRegistry
from lbfleet.push import ConfigPusher
from lbfleet.render import CommandRenderer
from lbfleet.repository import RepositoryGuard
from lbfleet.ssh import SSHExecutor
from lbfleet.status import StatusCollector
from lbfleet.screens.main import MainScreen


class LBFleetApp(App):
    TITLE = "Load Balancer Fleet"

    CSS = """
    Screen {
        background: $surface;
    }
    """

    def __init__(self, settings: Settings, registry: FleetRegistry, executor: SSHExecutor | None = None, **kwargs):
        super().__init__(**kwargs)
        self.settings = settings
        self.registry = registry
        self.executor = executor or SSHExecutor.from_settings(settings)
        self.collector = StatusCollector(
            self.executor,
            frontend_service=settings.frontend_service,
            failover_service=settings.failover_service,
        )
        self.pusher = ConfigPusher(
            self.executor,
            RepositoryGuard(settings.repository),
            CommandRenderer(settings.render_command, timeout=settings.command_timeout),
            settings,
        )

    def on_mount(self) -> None:
        self.push_screen(MainScreen(self.registry))

    async def action_quit(self) -> None:
        await self.executor.close()
        self.exit()

    async def on_unmount(self) -> None:
        await self.executor.close()
