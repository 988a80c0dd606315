from __future__ import annotations

import logging
import os
from pathlib import Path
import stat
import subprocess

from .errors import GitError


logger = logging.getLogger(__name__)

HOOK_NAME = "prepare-commit-msg"
HOOK_MARKER = "# managed-by: projman"


def _run_git(repo_root: Path, *args: str, timeout_s: float = 5.0) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(repo_root),
            text=True,
            capture_output=True,
            check=False,
            timeout=timeout_s,
        )
    except (OSError, subprocess.SubprocessError):
        return subprocess.CompletedProcess(args=["git", *args], returncode=124, stdout="", stderr="git invocation failed")


def _hook_script(task_id: str) -> str:
    return (
        "#!/bin/sh\n"
        f"{HOOK_MARKER}\n"
        "# Appends the tracked task id to every commit message.\n"
        'MSG_FILE="$1"\n'
        f'TASK_ID="{task_id}"\n'
        'if ! grep -q "^Task: $TASK_ID" "$MSG_FILE"; then\n'
        '  printf "\\nTask: %s\\n" "$TASK_ID" >> "$MSG_FILE"\n'
        "fi\n"
    )


class GitCollaborator:
    """Read-only questions about the repository around `cwd`, plus the commit hook."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()

    def is_in_repository(self) -> bool:
        proc = _run_git(self.cwd, "rev-parse", "--is-inside-work-tree")
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def get_current_branch(self) -> str:
        proc = _run_git(self.cwd, "rev-parse", "--abbrev-ref", "HEAD")
        if proc.returncode != 0:
            return ""
        branch = proc.stdout.strip()
        return "" if branch == "HEAD" else branch

    def get_current_commit(self) -> str:
        proc = _run_git(self.cwd, "rev-parse", "HEAD")
        return proc.stdout.strip() if proc.returncode == 0 else ""

    def get_repository_root(self) -> Path | None:
        proc = _run_git(self.cwd, "rev-parse", "--show-toplevel")
        if proc.returncode != 0 or not proc.stdout.strip():
            return None
        return Path(proc.stdout.strip())

    def _hooks_dir(self) -> Path:
        proc = _run_git(self.cwd, "rev-parse", "--git-path", "hooks")
        if proc.returncode != 0 or not proc.stdout.strip():
            raise GitError("not inside a git repository")
        hooks = Path(proc.stdout.strip())
        if not hooks.is_absolute():
            hooks = self.cwd / hooks
        return hooks

    def create_commit_hook(self, task_id: str) -> Path:
        hooks = self._hooks_dir()
        hook = hooks / HOOK_NAME
        if hook.exists() and HOOK_MARKER not in hook.read_text(encoding="utf-8", errors="replace"):
            raise GitError(f"refusing to overwrite existing hook: {hook}")
        hooks.mkdir(parents=True, exist_ok=True)
        hook.write_text(_hook_script(task_id), encoding="utf-8")
        mode = os.stat(hook).st_mode
        os.chmod(hook, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logger.info("installed %s hook for task %s at %s", HOOK_NAME, task_id, hook)
        return hook

    def remove_commit_hook(self) -> bool:
        """Remove the hook if this tool wrote it. Returns False when there was nothing to remove."""

        hook = self._hooks_dir() / HOOK_NAME
        if not hook.exists():
            return False
        if HOOK_MARKER not in hook.read_text(encoding="utf-8", errors="replace"):
            raise GitError(f"hook was not installed by pm: {hook}")
        hook.unlink()
        logger.info("removed %s hook at %s", HOOK_NAME, hook)
        return True
