"""Tests for the cratemirror command line interface."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from cratemirror.cache import Cache
from cratemirror.cli import cli
from cratemirror.errors import IndexUnavailableError


@pytest.fixture
def mirror(tmp_path: Path, registry) -> Path:
    """Return a cache directory whose index lists two packages."""
    path = tmp_path / "mirror"
    registry.add("serde", "1.0.0", b"serde archive")
    registry.add("tokio", "1.0.0", b"tokio archive")
    registry.write_index(path / "index")
    return path


def _invoke(args: list[str], registry=None):
    runner = CliRunner()
    if registry is None:
        return runner.invoke(cli, args)
    with patch("cratemirror.cli.run.build_session", return_value=registry):
        return runner.invoke(cli, args)


class TestCliVersion:
    """--version and the version command print just the version number."""

    def test_flag(self):
        result = _invoke(["--version"])
        assert result.exit_code == 0
        assert "cratemirror" not in result.output.lower()
        assert result.output.strip() != ""

    def test_same_as_flag(self):
        assert _invoke(["--version"]).output == _invoke(["version"]).output


class TestCliHelp:
    """Help output."""

    def test_help_command(self):
        result = _invoke(["help"])
        assert result.exit_code == 0
        assert "<command> --help" in result.output

    def test_lists_commands(self):
        result = _invoke(["--help"])
        assert result.exit_code == 0
        for command in ("new", "status", "sync", "verify", "version"):
            assert command in result.output


class TestCliUsageErrors:
    """Invalid arguments exit with status 2."""

    def test_invalid_jobs(self, tmp_path: Path):
        result = _invoke(["-p", str(tmp_path), "-j", "0", "sync"])
        assert result.exit_code == 2

    def test_new_requires_url(self, tmp_path: Path):
        result = _invoke(["-p", str(tmp_path), "new"])
        assert result.exit_code == 2

    def test_invalid_log_level(self, tmp_path: Path):
        result = _invoke(["-p", str(tmp_path), "--log-level", "chatty", "status"])
        assert result.exit_code == 2


@patch("cratemirror.cli.configure_logging")
class TestCliLogLevel:
    """--log-level and -v select the logging level."""

    def test_default(self, mock_configure: MagicMock, mirror: Path):
        _invoke(["-p", str(mirror), "status"])
        mock_configure.assert_called_once_with("INFO")

    def test_option_is_case_insensitive(self, mock_configure: MagicMock, mirror: Path):
        result = _invoke(["-p", str(mirror), "--log-level", "warning", "status"])
        assert result.exit_code == 0, result.output
        mock_configure.assert_called_once_with("WARNING")

    def test_from_environment(self, mock_configure: MagicMock, mirror: Path):
        runner = CliRunner(env={"CRATEMIRROR_LOG_LEVEL": "error"})
        result = runner.invoke(cli, ["-p", str(mirror), "status"])
        assert result.exit_code == 0, result.output
        mock_configure.assert_called_once_with("ERROR")

    def test_verbose_means_debug(self, mock_configure: MagicMock, mirror: Path):
        result = _invoke(["-p", str(mirror), "-v", "--log-level", "error", "status"])
        assert result.exit_code == 0, result.output
        mock_configure.assert_called_once_with("DEBUG")


class TestCliSync:
    """The sync command."""

    def test_downloads_archives(self, mirror: Path, registry):
        result = _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        assert result.exit_code == 0, result.output
        assert "Downloaded 2/2 archive(s)" in result.output
        assert (mirror / "archives" / "serde" / "1.0.0" / "download").exists()
        assert list((mirror / "state" / "logs").glob("*_sync.jsonl"))

    def test_nothing_to_download(self, mirror: Path, registry):
        _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        result = _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        assert result.exit_code == 0
        assert "Nothing to download (2 archive(s) checked)." in result.output

    def test_path_from_environment(self, mirror: Path, registry):
        runner = CliRunner()
        with patch("cratemirror.cli.run.build_session", return_value=registry):
            result = runner.invoke(
                cli, ["sync", "--no-refresh"], env={"CRATEMIRROR_PATH": str(mirror)}
            )
        assert result.exit_code == 0, result.output

    def test_partial_failure(self, mirror: Path, registry):
        registry.failures[registry.url("tokio", "1.0.0")] = 503
        result = _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        assert result.exit_code == 1
        assert "Downloaded 1/2 archive(s)" in result.output
        assert "tokio@1.0.0 [transient]" in result.output

    def test_integrity_failure(self, tmp_path: Path, registry):
        registry.add("serde", "1.0.0", b"serde archive", cksum="00" * 32)
        registry.write_index(tmp_path / "index")
        result = _invoke(["-p", str(tmp_path), "sync", "--no-refresh"], registry)
        assert result.exit_code == 1
        assert "[integrity]" in result.output
        assert "integrity failure(s)" in result.output

    def test_skipped_lines(self, tmp_path: Path, registry):
        registry.write_index(tmp_path / "index", extra_lines={"1/a": ["{not json"]})
        result = _invoke(["-p", str(tmp_path), "sync", "--no-refresh"], registry)
        assert result.exit_code == 0
        assert "Skipped 1 malformed index line(s)." in result.output

    def test_no_cache(self, tmp_path: Path, registry):
        result = _invoke(["-p", str(tmp_path / "missing"), "sync"], registry)
        assert result.exit_code == 3
        assert "no cache at" in result.output

    def test_unusable_index(self, mirror: Path, registry):
        # The index directory is not a git working copy of its own.
        result = _invoke(["-p", str(mirror), "sync"], registry)
        assert result.exit_code == 3
        assert "error:" in result.output
        assert not (mirror / "archives" / "serde").exists()

    def test_busy_cache(self, mirror: Path, registry):
        with Cache(mirror).lock():
            result = _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        assert result.exit_code == 3
        assert "in use by another process" in result.output

    def test_builds_session_from_options(self, mirror: Path, registry):
        with patch("cratemirror.cli.run.build_session", return_value=registry) as mock_build:
            result = CliRunner().invoke(
                cli,
                ["-p", str(mirror), "-j", "3", "-c", "ops@example.com", "sync", "--no-refresh"],
            )
        assert result.exit_code == 0, result.output
        mock_build.assert_called_once_with(jobs=3, contact="ops@example.com")


class TestCliVerify:
    """The verify command."""

    def test_repairs_tampered_archive(self, mirror: Path, registry):
        _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        archive = mirror / "archives" / "serde" / "1.0.0" / "download"
        archive.write_bytes(b"tampered")

        result = _invoke(["-p", str(mirror), "verify", "--no-refresh"], registry)

        assert result.exit_code == 0, result.output
        assert "Downloaded 1/1 archive(s)" in result.output
        assert archive.read_bytes() == b"serde archive"


class TestCliStatus:
    """The status command."""

    def test_reports_each_state(self, mirror: Path, registry):
        _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)
        (mirror / "archives" / "serde" / "1.0.0" / "download").write_bytes(b"tampered")
        (mirror / "archives" / "tokio" / "1.0.0" / "download").unlink()
        extra = mirror / "archives" / "gone" / "0.1.0" / "download"
        extra.parent.mkdir(parents=True)
        extra.write_bytes(b"old")

        result = _invoke(["-p", str(mirror), "status"])

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert "M serde 1.0.0" in lines
        assert "D tokio 1.0.0" in lines
        assert "A gone/0.1.0/download" in lines

    def test_hides_matching_archives_by_default(self, mirror: Path, registry):
        _invoke(["-p", str(mirror), "sync", "--no-refresh"], registry)

        assert _invoke(["-p", str(mirror), "status"]).output.strip() == ""

        result = _invoke(["-p", str(mirror), "status", "--all"])
        assert result.exit_code == 0
        assert "serde 1.0.0" in result.output
        assert "tokio 1.0.0" in result.output

    def test_does_not_download(self, mirror: Path, registry):
        result = _invoke(["-p", str(mirror), "status"], registry)
        assert result.exit_code == 0
        assert registry.calls == []

    @patch("cratemirror.cli.status.Progress")
    def test_advances_progress_per_entry(self, mock_progress_cls: MagicMock, mirror: Path):
        progress = mock_progress_cls.return_value.__enter__.return_value

        result = _invoke(["-p", str(mirror), "status"])

        assert result.exit_code == 0, result.output
        progress.add_task.assert_called_once_with("Checking archives", total=2)
        assert progress.advance.call_count == 2

    def test_no_cache(self, tmp_path: Path):
        result = _invoke(["-p", str(tmp_path), "status"])
        assert result.exit_code == 3


class TestCliNew:
    """The new command."""

    @patch("cratemirror.cli.new.Cache")
    def test_creates_cache(self, mock_cache_cls: MagicMock, tmp_path: Path):
        result = _invoke(["-p", str(tmp_path), "new", "-u", "https://git.example.com/index.git"])
        assert result.exit_code == 0, result.output
        mock_cache_cls.create.assert_called_once_with(tmp_path, "https://git.example.com/index.git")
        assert f"Created cache at {tmp_path}." in result.output

    def test_refuses_existing_cache(self, mirror: Path):
        result = _invoke(["-p", str(mirror), "new", "--url", "https://git.example.com/index.git"])
        assert result.exit_code == 3
        assert "already exists" in result.output

    @patch("cratemirror.cli.new.Cache")
    def test_unreachable_upstream(self, mock_cache_cls: MagicMock, tmp_path: Path):
        mock_cache_cls.create.side_effect = IndexUnavailableError("cannot clone index")
        result = _invoke(["-p", str(tmp_path), "new", "-u", "https://git.example.com/index.git"])
        assert result.exit_code == 3
        assert "cannot clone index" in result.output
