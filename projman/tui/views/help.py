from __future__ import annotations

from typing import Iterable

from ..keys import HELP_LINES


def render(activity: Iterable[str]) -> str:
    lines = ["Help", "", "Keys:"]
    width = max(len(k) for k, _ in HELP_LINES)
    for key, meaning in HELP_LINES:
        lines.append(f"  {key.ljust(width)}  {meaning}")
    lines.append("")
    lines.append("Recent activity:")
    recent = list(activity)
    if not recent:
        lines.append("  (none)")
    else:
        lines.extend(f"  {entry}" for entry in recent[-15:])
    lines.append("")
    lines.append("esc: back")
    return "\n".join(lines)
