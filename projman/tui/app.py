from __future__ import annotations

import asyncio
import contextlib
import logging

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Static

from .. import __version__
from ..config import ThemeConfig
from ..domain import local_now
from ..services import Services
from .controller import RootController
from .effects import Effect
from .keys import FORM_QUIT, normalize_key
from .messages import KeyPressed, Message, Resized, Tick
from .scheduler import Scheduler


logger = logging.getLogger(__name__)


class ProjmanApp(App[None]):
    CSS = """
    Screen {
        layout: vertical;
    }

    #status-bar {
        height: 1;
        padding: 0 1;
        background: $boost;
        color: $text;
    }

    #body {
        height: 1fr;
        border: solid $accent;
        padding: 0 1;
    }

    Footer {
        dock: none;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "request_quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        services: Services,
        *,
        controller: RootController | None = None,
        theme: ThemeConfig | None = None,
        tick_interval: float = 1.0,
    ) -> None:
        super().__init__()
        self.controller = controller or RootController()
        self.theme_colors = theme or ThemeConfig()
        self.scheduler = Scheduler(services)
        self.tick_interval = max(0.2, float(tick_interval))
        self.pending_effects: set[asyncio.Task[None]] = set()

        self.status_bar: Static
        self.body: Static

    def compose(self) -> ComposeResult:
        yield Static("", id="status-bar", markup=False)
        yield Static("", id="body", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"projman {__version__}"
        self.status_bar = self.query_one("#status-bar", Static)
        self.body = self.query_one("#body", Static)
        self.status_bar.styles.background = self.theme_colors.primary
        self.body.styles.border = ("solid", self.theme_colors.secondary)
        self.set_interval(self.tick_interval, self._tick)
        self._run_effects(self.controller.start())
        self._refresh_view()

    def on_resize(self, event: events.Resize) -> None:
        self._dispatch(Resized(event.size.width, event.size.height))

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._dispatch(KeyPressed(normalize_key(event.key, event.character)))

    async def on_unmount(self) -> None:
        await self._shutdown_pending_effects()

    def action_request_quit(self) -> None:
        self._dispatch(KeyPressed(FORM_QUIT))

    def _tick(self) -> None:
        self._dispatch(Tick(local_now()))

    def _dispatch(self, msg: Message) -> None:
        effects = self.controller.dispatch(msg)
        self._refresh_view()
        if self.controller.state.quitting:
            self.exit()
            return
        self._run_effects(effects)

    def _run_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            logger.debug("scheduling %s", effect.kind)
            task = asyncio.create_task(self.scheduler.submit(effect, self._dispatch), name=f"pm-{effect.kind}")
            self.pending_effects.add(task)
            task.add_done_callback(self.pending_effects.discard)

    async def _shutdown_pending_effects(self) -> None:
        tasks = list(self.pending_effects)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _refresh_view(self) -> None:
        if not hasattr(self, "body"):
            return
        self.status_bar.update(self.controller.status_line())
        self.body.update(self.controller.render())


def run_terminal_app(
    services: Services,
    *,
    time_format: str = "%H:%M",
    theme: ThemeConfig | None = None,
) -> int:
    app = ProjmanApp(services, controller=RootController(time_format=time_format), theme=theme)
    # Keep terminal-native text selection by disabling mouse reporting.
    app.run(mouse=False)
    return 0
