from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from lbfleet.errors import RepositoryError

log = logging.getLogger(__name__)


class RepositoryGuard:
    """Reports whether the local configuration repository has uncommitted changes."""

    def __init__(self, root: str | Path, logger: logging.Logger | None = None):
        self.root = Path(root)
        self.log = logger or log

    async def _git(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                "git", *args,
                cwd=str(self.root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RepositoryError(f"Could not run git in {self.root}: {exc}") from exc
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip()
            raise RepositoryError(f"git {' '.join(args)} failed in {self.root}: {err}")
        return stdout.decode(errors="replace")

    async def is_dirty(self) -> bool:
        # Untracked files count: they would be pushed by the tree sync
        out = await self._git("status", "--porcelain")
        changes = [line for line in out.splitlines() if line.strip()]
        if changes:
            self.log.warning("%s has %d uncommitted change(s)", self.root, len(changes))
            for line in changes:
                self.log.debug("  %s", line)
        return bool(changes)
