from __future__ import annotations


QUIT_KEYS = frozenset({"q", "ctrl+c"})
HELP_KEYS = frozenset({"?"})
BACK_KEYS = frozenset({"esc"})
REFRESH_KEYS = frozenset({"r"})

UP_KEYS = frozenset({"up", "k"})
DOWN_KEYS = frozenset({"down", "j"})
ENTER_KEYS = frozenset({"enter"})
NEW_KEYS = frozenset({"n"})
EDIT_KEYS = frozenset({"e"})
DELETE_KEYS = frozenset({"d"})
TOGGLE_KEYS = frozenset({"t"})
START_KEYS = frozenset({"s"})
STOP_KEYS = frozenset({"S"})

# Inside forms only these are special; everything printable is typed.
FORM_SUBMIT = "ctrl+s"
FORM_CANCEL = "esc"
FORM_NEXT = "tab"
FORM_PREV = "shift+tab"
FORM_BACKSPACE = "backspace"
FORM_QUIT = "ctrl+c"

_ALIASES = {
    "escape": "esc",
    "return": "enter",
    "ctrl+m": "enter",
    "ctrl+i": "tab",
    "backtab": "shift+tab",
    "ctrl+h": "backspace",
    "question_mark": "?",
    "space": " ",
}


def normalize_key(key: str, character: str | None = None) -> str:
    """Map a terminal key event to the names used by the controller.

    A single printable character wins over the key name, so `?` arrives as
    `?` and shift+s as `S`.
    """

    if character is not None and len(character) == 1 and character.isprintable():
        return character
    return _ALIASES.get(key, key)


def is_printable(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


HELP_LINES = (
    ("q / ctrl+c", "quit"),
    ("?", "help"),
    ("esc", "back to dashboard (cancel in forms)"),
    ("r", "refresh"),
    ("up/k, down/j", "move selection"),
    ("enter", "open / select"),
    ("n", "new task or project"),
    ("e", "edit task or project"),
    ("d", "delete task or project"),
    ("t", "toggle task done / todo"),
    ("s", "start timer on task"),
    ("S", "stop the running timer"),
    ("tab / shift+tab", "next / previous form field"),
    ("ctrl+s", "save form"),
)
