"""Async wrapper around the git CLI used to materialize working copies."""
import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# stderr fragments git prints when the requested branch does not exist upstream
_MISSING_BRANCH_MARKERS = (
    "remote branch",
    "couldn't find remote ref",
    "could not find remote branch",
)


class GitCommandError(Exception):
    """A git command exited non-zero or timed out."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


def is_missing_branch_error(error: GitCommandError) -> bool:
    stderr = error.stderr.lower()
    return any(marker in stderr for marker in _MISSING_BRANCH_MARKERS) and (
        "not found" in stderr or "couldn't find" in stderr or "could not find" in stderr
    )


def _redact(text: str, secret: Optional[str]) -> str:
    return text.replace(secret, "***") if secret else text


class GitRunner:
    """
    Runs git as a subprocess.

    Clone URLs embed an installation token; the token is redacted from every
    error message and log line, and is not left in ``.git/config``.
    """

    def __init__(self, timeout: int = 300):
        self._timeout = timeout

    async def _run(self, args: List[str], cwd: Optional[Path] = None, secret: Optional[str] = None) -> str:
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitCommandError(f"git {args[0]} timed out after {self._timeout}s") from exc

        err_text = _redact(stderr.decode("utf-8", errors="replace"), secret)
        if process.returncode != 0:
            raise GitCommandError(
                f"git {args[0]} failed with exit code {process.returncode}: {err_text.strip()}",
                returncode=process.returncode,
                stderr=err_text,
            )
        return stdout.decode("utf-8", errors="replace").strip()

    async def clone(self, url: str, dest: Path, branch: str, public_url: str, secret: Optional[str] = None) -> None:
        """Shallow, single-branch clone into ``dest`` (replacing anything already there)."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        if dest.exists():
            shutil.rmtree(dest, ignore_errors=True)
        await self._run(
            ["clone", "--depth", "1", "--single-branch", "--branch", branch, url, str(dest)],
            secret=secret,
        )
        await self._run(["remote", "set-url", "origin", public_url], cwd=dest)

    async def update(self, url: str, dest: Path, branch: str, secret: Optional[str] = None) -> None:
        """Bring an existing working copy to the upstream head of ``branch``."""
        await self._run(["fetch", "--depth", "1", url, branch], cwd=dest, secret=secret)
        await self._run(["checkout", "-B", branch, "FETCH_HEAD"], cwd=dest)
        await self._run(["reset", "--hard", "FETCH_HEAD"], cwd=dest)

    async def head_sha(self, dest: Path) -> str:
        return await self._run(["rev-parse", "HEAD"], cwd=dest)
