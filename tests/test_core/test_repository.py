"""Tests for am2r_launcher.core.repository module."""

import io
import shutil
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest
from git import RemoteProgress, Repo

from am2r_launcher.core.errors import (
    CorruptRepositoryError,
    NetworkUnavailableError,
    SyncCancelledError,
    ToolExecutionError,
)
from am2r_launcher.core.repository import (
    GitTransferProgress,
    RepositorySync,
    _iter_progress_lines,
    is_network_error,
    parse_transferred_bytes,
)
from am2r_launcher.core.types import TransferProgress, WorkingTreeStatus

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

MANIFEST = '<?xml version="1.0"?>\n<message Name="Community Updates (Latest)" Version="1.5.5" />\n'


def _commit(repo: Repo, files: dict[str, str], message: str) -> None:
    root = Path(repo.working_tree_dir)
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    repo.index.add(list(files))
    repo.index.commit(message)


@pytest.fixture
def remote_repo(temp_dir: Path) -> Repo:
    """A local repository standing in for a PatchData mirror."""
    repo = Repo.init(temp_dir / "remote", initial_branch="master")
    _commit(repo, {"profile.xml": MANIFEST, "data/AM2R.xdelta": "patch"}, "Initial PatchData")
    yield repo
    repo.close()


def _fake_process(stderr: bytes, exit_code: int = 0) -> Mock:
    process = Mock()
    process.stderr = io.BytesIO(stderr)
    process.proc.stdout = None
    process.proc.stderr = None
    process.proc.wait.return_value = exit_code
    return process


class TestHelpers:
    """Test module level helpers."""

    @pytest.mark.parametrize(
        "stderr",
        [
            "fatal: unable to access 'https://github.com/x.git/': Could not resolve host: github.com",
            "fatal: unable to access 'https://gitlab.com/x.git/': Failed to connect to gitlab.com port 443",
            "fatal: the remote end hung up unexpectedly",
            "server certificate verification failed. SSL certificate problem: unable to get local issuer",
        ],
    )
    def test_network_errors(self, stderr: str):
        assert is_network_error(stderr)

    def test_other_errors(self):
        assert not is_network_error("fatal: repository '/tmp/missing' does not exist")

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            (", 1.50 MiB | 512.00 KiB/s", 1572864),
            (", 512 bytes | 10 bytes/s", 512),
            (", 2.00 GiB | 10.00 MiB/s", 2 * 1024**3),
            ("done.", None),
        ],
    )
    def test_parse_transferred_bytes(self, message: str, expected: int | None):
        assert parse_transferred_bytes(message) == expected

    def test_iter_progress_lines(self):
        """Test that carriage returns split progress lines."""
        stream = io.BytesIO(b"Receiving objects:  10% (1/10)\rReceiving objects: 100% (10/10)\ndone")
        assert list(_iter_progress_lines(stream)) == [
            "Receiving objects:  10% (1/10)",
            "Receiving objects: 100% (10/10)",
            "done",
        ]


class TestGitTransferProgress:
    """Test GitTransferProgress class."""

    def test_update(self):
        events: list[TransferProgress] = []
        progress = GitTransferProgress(events.append)

        progress.update(RemoteProgress.RECEIVING, 5, 10, ", 1.00 MiB | 1.00 MiB/s")

        assert events[-1].received_objects == 5
        assert events[-1].total_objects == 10
        assert events[-1].received_bytes == 1024**2
        assert events[-1].percent == 50
        assert events[-1].stage == "receiving"
        assert progress.cancelled is False

    def test_bytes_kept_between_stages(self):
        """Test that resolving deltas does not reset the received size."""
        progress = GitTransferProgress()
        progress.update(RemoteProgress.RECEIVING, 10, 10, ", 3.00 KiB | 1 KiB/s")
        progress.update(RemoteProgress.RESOLVING, 2, 4, "")
        assert progress.state.received_bytes == 3072
        assert progress.state.stage == "resolving"

    def test_callback_cancels(self):
        progress = GitTransferProgress(lambda _state: False)
        progress.update(RemoteProgress.COUNTING, 1, None, "")
        assert progress.cancelled is True

    def test_display(self):
        state = TransferProgress(received_objects=120, total_objects=400, received_bytes=5_500_000)
        assert state.display() == "120 (5MB) / 400 objects"


class TestRunWithProgress:
    """Test the git child process driver without a real git."""

    def test_cancel_kills_process(self):
        git = Mock()
        process = _fake_process(b"Receiving objects:  10% (1/10)\rReceiving objects:  20% (2/10)\r")
        git.clone.return_value = process

        with pytest.raises(SyncCancelledError):
            RepositorySync._run_with_progress(git, "clone", ["url"], lambda _state: False)

        process.proc.kill.assert_called_once()
        git.clone.assert_called_once_with("url", as_process=True)

    def test_progress_reported(self):
        git = Mock()
        git.fetch.return_value = _fake_process(b"Receiving objects:  50% (5/10), 1.00 MiB | 2.00 MiB/s\r")
        events: list[TransferProgress] = []

        RepositorySync._run_with_progress(git, "fetch", [], events.append)

        assert events[-1].percent == 50

    def test_network_failure(self):
        git = Mock()
        git.clone.return_value = _fake_process(
            b"fatal: unable to access 'https://github.com/x.git/': Could not resolve host: github.com\n",
            exit_code=128,
        )

        with pytest.raises(NetworkUnavailableError) as exc_info:
            RepositorySync._run_with_progress(git, "clone", [], None, url="https://github.com/x.git")

        assert exc_info.value.url == "https://github.com/x.git"

    def test_other_failure(self):
        git = Mock()
        git.clone.return_value = _fake_process(b"fatal: destination path exists\n", exit_code=128)

        with pytest.raises(ToolExecutionError) as exc_info:
            RepositorySync._run_with_progress(git, "clone", [], None)

        assert exc_info.value.exit_code == 128
        assert "destination path exists" in exc_info.value.stderr


class TestConnectivity:
    """Test RepositorySync.check_connectivity."""

    def test_reachable(self):
        sync = RepositorySync()
        sync._client = Mock(spec=httpx.Client)

        assert sync.check_connectivity("https://github.com/AM2R-Community-Developers/x.git")
        sync._client.head.assert_called_once_with("https://github.com")

    def test_unreachable(self):
        sync = RepositorySync()
        sync._client = Mock(spec=httpx.Client)
        sync._client.head.side_effect = httpx.ConnectError("no route")

        assert not sync.check_connectivity("https://gitlab.com/x.git")

    def test_close(self):
        with RepositorySync(timeout=1.0) as sync:
            client = sync.client
            assert client.timeout.connect == 1.0
        assert sync._client is None


@requires_git
@pytest.mark.integration
class TestRepositorySync:
    """Test clone, pull and inspection against local repositories."""

    def test_inspect_absent(self, temp_dir: Path):
        sync = RepositorySync()
        assert sync.inspect(temp_dir / "PatchData") == WorkingTreeStatus.ABSENT
        (temp_dir / "PatchData").mkdir()
        assert sync.inspect(temp_dir / "PatchData") == WorkingTreeStatus.ABSENT

    def test_inspect_not_a_repository(self, temp_dir: Path):
        tree = temp_dir / "PatchData"
        tree.mkdir()
        (tree / "profile.xml").write_text(MANIFEST)
        assert RepositorySync().inspect(tree) == WorkingTreeStatus.CORRUPT

    def test_clone(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "root" / "PatchData"
        sync = RepositorySync()

        sync.clone(str(remote_repo.working_tree_dir), destination)

        assert (destination / "profile.xml").read_text() == MANIFEST
        assert sync.inspect(destination) == WorkingTreeStatus.VALID

    def test_clone_replaces_existing(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "PatchData"
        destination.mkdir()
        (destination / "junk.txt").write_text("junk")

        RepositorySync().clone(str(remote_repo.working_tree_dir), destination)

        assert not (destination / "junk.txt").exists()

    def test_clone_missing_remote(self, temp_dir: Path):
        with pytest.raises(ToolExecutionError):
            RepositorySync().clone(str(temp_dir / "missing"), temp_dir / "PatchData")

    def test_inspect_missing_manifest(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)

        (destination / "profile.xml").unlink()

        assert sync.inspect(destination) == WorkingTreeStatus.CORRUPT

    def test_pull_updates_and_discards_local_changes(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)

        (destination / "data" / "AM2R.xdelta").write_text("local edit")
        _commit(remote_repo, {"data/game.xdelta": "new patch"}, "Add Linux patch")

        assert sync.pull(destination) is True
        assert (destination / "data" / "game.xdelta").read_text() == "new patch"
        assert (destination / "data" / "AM2R.xdelta").read_text() == "patch"

    def test_pull_unreachable_remote(self, temp_dir: Path, remote_repo: Repo):
        """Test that a failed fetch keeps the existing tree."""
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)
        with Repo(destination) as repo:
            repo.remote("origin").set_url(str(temp_dir / "missing"))

        assert sync.pull(destination) is False
        assert (destination / "profile.xml").is_file()

    def test_pull_locked_index(self, temp_dir: Path, remote_repo: Repo):
        """Test that a reset blocked by a stale index lock raises a launcher error."""
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)
        (destination / ".git" / "index.lock").write_text("")

        with pytest.raises(ToolExecutionError) as exc_info:
            sync.pull(destination)

        assert exc_info.value.tool == "git"
        assert "index.lock" in exc_info.value.stderr
        assert sync.pending_mirror is None
        assert (destination / "profile.xml").is_file()

    def test_pull_not_a_repository(self, temp_dir: Path):
        tree = temp_dir / "PatchData"
        tree.mkdir()
        with pytest.raises(CorruptRepositoryError):
            RepositorySync().pull(tree)

    def test_pull_manifest_removed_upstream(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)

        remote_repo.index.remove(["profile.xml"], working_tree=True)
        remote_repo.index.commit("Remove manifest")

        with pytest.raises(CorruptRepositoryError, match="profile.xml missing"):
            sync.pull(destination)

    def test_switch_mirror(self, temp_dir: Path, remote_repo: Repo):
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)

        assert sync.switch_mirror(destination, "https://gitlab.com/am2r/x.git") is True

        with Repo(destination) as repo:
            assert repo.remote("origin").url == "https://gitlab.com/am2r/x.git"

    def test_switch_mirror_queued_while_syncing(self, temp_dir: Path, remote_repo: Repo):
        """Test that a switch during a sync applies when the sync finishes."""
        destination = temp_dir / "PatchData"
        sync = RepositorySync()
        sync.clone(str(remote_repo.working_tree_dir), destination)

        sync._begin()
        assert sync.switch_mirror(destination, "https://gitlab.com/am2r/x.git") is False
        assert sync.pending_mirror == "https://gitlab.com/am2r/x.git"
        sync._finish()

        assert sync.pending_mirror is None
        with Repo(destination) as repo:
            assert repo.remote("origin").url == "https://gitlab.com/am2r/x.git"
