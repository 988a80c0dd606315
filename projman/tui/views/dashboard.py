from __future__ import annotations

from dataclasses import replace

from .. import keys
from ..messages import KeyPressed, MenuSelected, Message
from ..state import DASHBOARD_ITEMS, DashboardState
from ._common import move


def reduce(state: DashboardState, msg: Message) -> tuple[DashboardState, tuple[Message, ...]]:
    if not isinstance(msg, KeyPressed):
        return state, ()
    key = msg.key
    if key in keys.UP_KEYS:
        return replace(state, selected=move(state.selected, -1, len(DASHBOARD_ITEMS))), ()
    if key in keys.DOWN_KEYS:
        return replace(state, selected=move(state.selected, 1, len(DASHBOARD_ITEMS))), ()
    if key in keys.ENTER_KEYS:
        return state, (MenuSelected(DASHBOARD_ITEMS[state.selected].action),)
    return state, ()


def render(state: DashboardState) -> str:
    lines = ["Project Manager", "", "Choose an action:", ""]
    for index, item in enumerate(DASHBOARD_ITEMS):
        pointer = ">" if index == state.selected else " "
        lines.append(f"{pointer} {item.icon} {item.title}")
        if index == state.selected:
            lines.append(f"    {item.description}")
        lines.append("")
    lines.append("up/down: navigate | enter: select | q: quit | ?: help")
    return "\n".join(lines)
