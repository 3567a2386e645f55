from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Label, Static

from lbfleet.models import Host


class PushConfirmScreen(ModalScreen[bool]):
    """Lists the hosts a push will touch and asks before starting it."""

    BINDINGS = [
        Binding("y", "answer(True)", "Push"),
        Binding("n", "answer(False)", "Cancel"),
        Binding("escape", "answer(False)", "Cancel", show=False),
    ]

    CSS = """
    PushConfirmScreen {
        align: center middle;
    }
    #push-dialog {
        width: 70;
        height: auto;
        max-height: 80%;
        padding: 1 2;
        border: thick $warning;
        background: $surface;
    }
    #push-targets {
        margin: 1 0;
    }
    .skipped {
        color: $text-muted;
    }
    """

    def __init__(self, targets: list[Host], skipped: list[Host]):
        super().__init__()
        self.targets = targets
        self.skipped = skipped

    def compose(self) -> ComposeResult:
        with Vertical(id="push-dialog"):
            if self.targets:
                yield Label(f"Push configuration to [b]{len(self.targets)}[/b] standby host(s)?")
                lines = "\n".join(f"  {h.index}  {h.address}" for h in self.targets)
            else:
                yield Label("No standby hosts: nothing will be pushed.")
                lines = ""
            yield Static(lines, id="push-targets")
            for host in self.skipped:
                yield Static(f"skipping {host.address} (active)", classes="skipped")
            yield Static("\\[y] Push  /  \\[n] Cancel")

    def action_answer(self, confirmed: bool) -> None:
        self.dismiss(confirmed)
