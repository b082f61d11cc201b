"""PatchData repository synchronization.

The content repository is cloned once and pulled on later starts. Git
runs as a child process driven through GitPython so that progress lines
can be parsed as they arrive and the transfer killed on cancellation.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import IO
from urllib.parse import urlsplit

import httpx
import structlog
from git import Git, RemoteProgress, Repo
from git.exc import GitCommandError, GitCommandNotFound, InvalidGitRepositoryError, NoSuchPathError

from am2r_launcher.core.errors import (
    CorruptRepositoryError,
    NetworkUnavailableError,
    SyncCancelledError,
    ToolExecutionError,
    ToolMissingError,
)
from am2r_launcher.core.types import TransferProgress, WorkingTreeStatus
from am2r_launcher.core.utils import delete_directory

logger = structlog.get_logger()

MANIFEST_NAME = "profile.xml"
UPSTREAM_BRANCHES = ("origin/master", "origin/main")

# git writes these to stderr when the remote cannot be reached
NETWORK_ERROR_MARKERS = (
    "could not resolve host",
    "failed to connect",
    "unable to access",
    "connection timed out",
    "connection refused",
    "connection was reset",
    "network is unreachable",
    "ssl certificate problem",
    "gnutls_handshake",
    "the remote end hung up unexpectedly",
)

_SIZE_PATTERN = re.compile(r"(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>bytes|KiB|MiB|GiB)")
_SIZE_UNITS = {"bytes": 1, "KiB": 1024, "MiB": 1024**2, "GiB": 1024**3}

_STAGES = {
    RemoteProgress.COUNTING: "counting",
    RemoteProgress.COMPRESSING: "compressing",
    RemoteProgress.WRITING: "writing",
    RemoteProgress.RECEIVING: "receiving",
    RemoteProgress.RESOLVING: "resolving",
    RemoteProgress.FINDING_SOURCES: "finding_sources",
    RemoteProgress.CHECKING_OUT: "checking_out",
}

ProgressCallback = Callable[[TransferProgress], bool | None]


def is_network_error(stderr: str) -> bool:
    """Check whether git error output describes an unreachable remote."""
    text = stderr.lower()
    return any(marker in text for marker in NETWORK_ERROR_MARKERS)


def parse_transferred_bytes(message: str) -> int | None:
    """Extract the received size from a git progress message.

    Example:
        >>> parse_transferred_bytes(", 1.50 MiB | 512.00 KiB/s")
        1572864
    """
    match = _SIZE_PATTERN.search(message)
    if match is None:
        return None
    return int(float(match.group("value")) * _SIZE_UNITS[match.group("unit")])


class GitTransferProgress(RemoteProgress):
    """Converts git progress lines into TransferProgress updates.

    A callback returning False requests cancellation; the transfer is
    then killed by the reader loop.
    """

    def __init__(self, on_progress: ProgressCallback | None = None):
        super().__init__()
        self.on_progress = on_progress
        self.cancelled = False
        self.state = TransferProgress()

    def update(
        self,
        op_code: int,
        cur_count: str | float,
        max_count: str | float | None = None,
        message: str = "",
    ) -> None:
        stage = _STAGES.get(op_code & self.OP_MASK, "")
        received_bytes = self.state.received_bytes
        if stage == "receiving":
            received_bytes = parse_transferred_bytes(message or "") or received_bytes

        self.state = TransferProgress(
            received_objects=int(float(cur_count or 0)),
            total_objects=int(float(max_count or 0)),
            received_bytes=received_bytes,
            stage=stage,
        )

        if self.on_progress is not None and self.on_progress(self.state) is False:
            self.cancelled = True


def _iter_progress_lines(stream: IO[bytes]) -> Iterator[str]:
    """Yield git progress lines, which are terminated by CR or LF."""
    buffer = b""
    while True:
        chunk = stream.read1(4096) if hasattr(stream, "read1") else stream.read(4096)
        if not chunk:
            break
        buffer += chunk
        parts = re.split(rb"[\r\n]", buffer)
        buffer = parts.pop()
        for part in parts:
            if part:
                yield part.decode("utf-8", errors="replace")
    if buffer:
        yield buffer.decode("utf-8", errors="replace")


class RepositorySync:
    """Clones and updates the PatchData working tree."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()
        self._syncing = False
        self._pending_mirror: tuple[Path, str] | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client used for connectivity probes."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    @property
    def pending_mirror(self) -> str | None:
        with self._lock:
            return self._pending_mirror[1] if self._pending_mirror else None

    def check_connectivity(self, url: str) -> bool:
        """Probe whether the host of a mirror URL answers HTTP requests."""
        parts = urlsplit(url)
        probe_url = f"{parts.scheme}://{parts.netloc}"
        try:
            self.client.head(probe_url)
        except httpx.HTTPError as e:
            logger.info("connectivity_check_failed", url=probe_url, error=str(e))
            return False
        logger.debug("connectivity_check_ok", url=probe_url)
        return True

    def inspect(self, working_tree: Path) -> WorkingTreeStatus:
        """Classify the local working tree.

        A directory that exists but is not a readable git repository, or
        lacks the root manifest, is corrupt and must be re-cloned.
        """
        if not working_tree.is_dir() or not any(working_tree.iterdir()):
            return WorkingTreeStatus.ABSENT

        try:
            Repo(working_tree).close()
        except (InvalidGitRepositoryError, NoSuchPathError):
            return WorkingTreeStatus.CORRUPT

        if not (working_tree / MANIFEST_NAME).is_file():
            return WorkingTreeStatus.CORRUPT
        return WorkingTreeStatus.VALID

    def clone(
        self,
        mirror_url: str,
        destination: Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Clone a mirror into destination, replacing anything already there.

        Raises:
            SyncCancelledError: If the progress callback returned False
            NetworkUnavailableError: If the mirror could not be reached
            ToolExecutionError: If git failed for another reason
        """
        if destination.exists():
            logger.info("clone_destination_cleanup", path=str(destination))
            delete_directory(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        logger.info("clone_start", url=mirror_url, destination=str(destination))
        git = Git(str(destination.parent))
        git.update_environment(GIT_TERMINAL_PROMPT="0")

        self._begin()
        try:
            self._run_with_progress(
                git,
                "clone",
                ["--progress", "-v", "--", mirror_url, str(destination)],
                on_progress,
                url=mirror_url,
            )
        finally:
            self._finish()
        logger.info("clone_complete", url=mirror_url)

    def pull(self, working_tree: Path, on_progress: ProgressCallback | None = None) -> bool:
        """Update the working tree to the upstream tip.

        Local changes are discarded. A failed fetch is logged and leaves
        the tree as it was.

        Returns:
            True if the tree was updated, False if the fetch failed

        Raises:
            CorruptRepositoryError: If no upstream branch exists or the manifest is gone
            ToolExecutionError: If the tree cannot be reset before fetching
            SyncCancelledError: If the progress callback returned False
        """
        try:
            repo = Repo(working_tree)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise CorruptRepositoryError(
                f"Not a git repository: {working_tree}", path=str(working_tree)
            ) from e

        self._begin()
        try:
            with repo:
                branch = self._resolve_upstream(repo, working_tree)
                try:
                    repo.git.reset("--hard", branch)
                except GitCommandError as e:
                    logger.error("pull_reset_failed", path=str(working_tree), error=str(e))
                    raise ToolExecutionError(
                        f"Cannot reset {working_tree} to {branch}",
                        tool="git",
                        exit_code=e.status if isinstance(e.status, int) else None,
                        stderr=str(e.stderr or ""),
                    ) from e

                try:
                    self._run_with_progress(
                        repo.git, "fetch", ["--progress", "-v", "origin"], on_progress
                    )
                    repo.git.reset("--hard", branch)
                except (GitCommandError, NetworkUnavailableError, ToolExecutionError) as e:
                    logger.error("pull_failed", path=str(working_tree), error=str(e))
                    return False
        finally:
            self._finish()

        if not (working_tree / MANIFEST_NAME).is_file():
            raise CorruptRepositoryError(
                f"{MANIFEST_NAME} missing after pull", path=str(working_tree)
            )

        logger.info("pull_complete", path=str(working_tree), branch=branch)
        return True

    def switch_mirror(self, working_tree: Path, url: str) -> bool:
        """Point the origin remote at another mirror.

        While a clone or pull runs the change is queued and applied when
        the operation finishes.

        Returns:
            True if applied now, False if queued
        """
        with self._lock:
            if self._syncing:
                self._pending_mirror = (working_tree, url)
                logger.info("mirror_switch_queued", url=url)
                return False
        self._set_origin(working_tree, url)
        return True

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> RepositorySync:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _begin(self) -> None:
        with self._lock:
            self._syncing = True

    def _finish(self) -> None:
        with self._lock:
            self._syncing = False
            pending, self._pending_mirror = self._pending_mirror, None
        if pending is not None:
            working_tree, url = pending
            if working_tree.is_dir():
                self._set_origin(working_tree, url)

    @staticmethod
    def _set_origin(working_tree: Path, url: str) -> None:
        if not working_tree.is_dir():
            # Nothing cloned yet, the next clone uses the new mirror
            return
        try:
            with Repo(working_tree) as repo:
                repo.remote("origin").set_url(url)
        except (InvalidGitRepositoryError, NoSuchPathError, ValueError) as e:
            raise CorruptRepositoryError(
                f"Cannot update origin of {working_tree}: {e}", path=str(working_tree)
            ) from e
        logger.info("mirror_switched", url=url)

    @staticmethod
    def _resolve_upstream(repo: Repo, working_tree: Path) -> str:
        ref_names = {ref.name for ref in repo.refs}
        for branch in UPSTREAM_BRANCHES:
            if branch in ref_names:
                return branch
        raise CorruptRepositoryError(
            "Neither origin/master nor origin/main exists",
            path=str(working_tree),
        )

    @staticmethod
    def _run_with_progress(
        git: Git,
        command: str,
        args: list[str],
        on_progress: ProgressCallback | None,
        url: str | None = None,
    ) -> None:
        progress = GitTransferProgress(on_progress)
        handle_line = progress.new_message_handler()

        try:
            process = getattr(git, command)(*args, as_process=True)
        except GitCommandNotFound as e:
            raise ToolMissingError("git is not installed or not on PATH", tool="git") from e

        output: list[str] = []
        try:
            for line in _iter_progress_lines(process.stderr):
                handle_line(line)
                if not line.startswith(("Receiving", "Resolving", "Counting", "Compressing")):
                    output.append(line)
                if progress.cancelled:
                    process.proc.kill()
                    process.proc.wait()
                    logger.info("sync_cancelled", command=command)
                    raise SyncCancelledError(f"git {command} cancelled")
            exit_code = process.proc.wait()
        finally:
            for stream in (process.proc.stdout, process.proc.stderr):
                if stream is not None:
                    stream.close()

        if exit_code != 0:
            stderr = "\n".join(output)
            if is_network_error(stderr):
                raise NetworkUnavailableError(
                    f"Cannot reach mirror: {stderr.strip()}", url=url
                )
            raise ToolExecutionError(
                f"git {command} failed with exit code {exit_code}",
                tool="git",
                exit_code=exit_code,
                stderr=stderr,
            )
