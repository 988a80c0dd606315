"""Full-screen interface.

Everything except `app` is plain Python; import `projman.tui.app` only when
Textual is installed.
"""

from .controller import RootController
from .scheduler import Scheduler
from .state import AppState, ViewState

__all__ = ["AppState", "RootController", "Scheduler", "ViewState"]
