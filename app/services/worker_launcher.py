"""Launching the isolated scan worker.

The worker is a container image that reads its job from ``SCAN_INPUT_JSON``
and POSTs results to the callback URL. Launching is fire-and-forget: the
container runs detached and removes itself on exit.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from app.core.config import settings
from app.schemas.job import JobDescriptor

logger = logging.getLogger(__name__)


class WorkerLaunchError(Exception):
    """The worker process could not be started."""


class WorkerLauncher(Protocol):
    async def launch(self, job: JobDescriptor) -> str:
        """Start a worker for ``job`` and return its handle (container name)."""
        ...


class DockerWorkerLauncher:
    """
    Starts one ``docker run --rm --detach`` container per scan.

    Secrets and the job descriptor are passed through the child process
    environment and forwarded with ``-e NAME`` (no value), so they never
    appear in the docker command line.
    """

    def __init__(
        self,
        image: Optional[str] = None,
        network: Optional[str] = None,
        host_workspace: Optional[str] = None,
        worker_workspace: Optional[str] = None,
        secrets: Optional[Dict[str, str]] = None,
        timeout: int = 60,
    ):
        self._image = image or settings.SCANNER_DOCKER_IMAGE
        self._network = network if network is not None else settings.SCANNER_NETWORK
        self._host_workspace = Path(host_workspace or settings.WORKSPACE_DIR).resolve()
        self._worker_workspace = worker_workspace or settings.WORKER_WORKSPACE_DIR
        self._secrets = secrets if secrets is not None else {"OPENROUTER_API_KEY": settings.OPENROUTER_API_KEY}
        self._timeout = timeout

    def build_command(self, container_name: str) -> List[str]:
        cmd = [
            "docker", "run", "--rm", "--detach",
            "--name", container_name,
            "-e", "SCAN_INPUT_JSON",
        ]
        for name in self._secrets:
            cmd += ["-e", name]
        cmd += ["-v", f"{self._host_workspace}:{self._worker_workspace}"]
        if self._network and self._network != "bridge":
            cmd += ["--network", self._network]
        cmd.append(self._image)
        return cmd

    async def launch(self, job: JobDescriptor) -> str:
        container_name = f"scan-{job.run_id}"
        env = dict(os.environ)
        env["SCAN_INPUT_JSON"] = job.to_env_json()
        env.update({k: v or "" for k, v in self._secrets.items()})

        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(container_name),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except (OSError, asyncio.TimeoutError) as exc:
            raise WorkerLaunchError(f"Docker spawn failed: {exc}") from exc

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise WorkerLaunchError(f"Docker spawn failed: {message}")

        logger.info("Scanner container started: %s", container_name)
        return container_name
