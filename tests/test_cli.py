"""Tests for the bisync command-line entry point.

Exercises main() end to end against local directories.  Logging setup is
patched out because pytest's log capture owns the root logger.
"""

import json
import os
from unittest.mock import patch

import pytest

from bisync import __version__
from bisync.cli import EXIT_ABORTED, EXIT_ERROR, EXIT_OK, build_parser, main

_ENV_KEYS = (
    "BISYNC_CONFIG",
    "BISYNC_WORKDIR",
    "BISYNC_CHECK_FILENAME",
    "BISYNC_MAX_DELETE",
    "BISYNC_TRANSFERS",
    "BISYNC_RESILIENT",
    "BISYNC_FORCE",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    with patch("bisync.cli.setup_logging"):
        yield


@pytest.fixture
def trees(tmp_path):
    """Two local trees plus the argv prefix pointing at them."""
    one = tmp_path / "one"
    two = tmp_path / "two"
    one.mkdir()
    two.mkdir()
    argv = [str(one), str(two), "--workdir", str(tmp_path / "work")]
    return one, two, argv


# -------------------------------------------------------------------------
# Argument parsing
# -------------------------------------------------------------------------


class TestParser:
    """Tests for build_parser()."""

    def test_unset_flags_are_none(self):
        args = build_parser().parse_args(["a", "b"])
        assert args.resync is None
        assert args.force is None
        assert args.exclude is None

    def test_repeatable_exclude(self):
        args = build_parser().parse_args(
            ["a", "b", "--exclude", "*.tmp", "--exclude", "*.bak"]
        )
        assert args.exclude == ["*.tmp", "*.bak"]

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            build_parser().parse_args(["--version"])
        assert info.value.code == 0
        assert __version__ in capsys.readouterr().out


# -------------------------------------------------------------------------
# main()
# -------------------------------------------------------------------------


class TestMain:
    """Exit codes and output of main()."""

    def test_first_run_needs_resync(self, trees):
        one, two, argv = trees
        (one / "a.txt").write_text("a")
        assert main(argv) == EXIT_ABORTED

    def test_resync_then_normal_run(self, trees, capsys):
        one, two, argv = trees
        (one / "a.txt").write_text("a")
        (two / "b.txt").write_text("b")

        assert main([*argv, "--resync"]) == EXIT_OK
        assert (two / "a.txt").read_text() == "a"
        assert (one / "b.txt").read_text() == "b"
        assert "Bisync resync report" in capsys.readouterr().out

        (one / "c.txt").write_text("c")
        assert main(argv) == EXIT_OK
        assert (two / "c.txt").read_text() == "c"

    def test_json_output(self, trees, capsys):
        one, two, argv = trees
        (one / "a.txt").write_text("a")

        assert main([*argv, "--resync", "--json"]) == EXIT_OK
        data = json.loads(capsys.readouterr().out)
        assert data["mode"] == "resync"
        assert data["queues"]["copy1to2"] == ["a.txt"]
        assert data["counts"]["copied_to_path2"] == 1

    def test_dry_run_preview(self, trees, capsys):
        one, two, argv = trees
        (one / "a.txt").write_text("a")

        assert main([*argv, "--resync", "--dry-run"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "DRY RUN" in out
        assert "[COPY TO PATH2]" in out
        assert not (two / "a.txt").exists()

    def test_safety_abort_is_error(self, trees, capsys):
        one, two, argv = trees
        (one / "a.txt").write_text("a")
        (one / "b.txt").write_text("b")
        assert main([*argv, "--resync"]) == EXIT_OK
        capsys.readouterr()

        (one / "a.txt").unlink()
        (one / "b.txt").unlink()
        assert main(argv) == EXIT_ERROR
        assert (two / "a.txt").exists()

        assert main([*argv, "--force"]) == EXIT_OK
        assert not (two / "a.txt").exists()

    def test_invalid_option_value(self, trees):
        _, _, argv = trees
        assert main([*argv, "--transfers", "0"]) == EXIT_ERROR

    def test_compare_hash_detects_same_size_same_mtime_edit(self, trees):
        one, two, argv = trees
        (one / "f.txt").write_text("aaaa")
        (one / "other.txt").write_text("o")
        assert main([*argv, "--resync", "--compare-hash"]) == EXIT_OK

        stamp = (one / "f.txt").stat().st_mtime_ns
        (one / "f.txt").write_text("bbbb")
        os.utime(one / "f.txt", ns=(stamp, stamp))

        assert main([*argv, "--compare-hash"]) == EXIT_OK
        assert (two / "f.txt").read_text() == "bbbb"

    def test_unusable_workdir_is_error(self, trees, tmp_path):
        one, two, _ = trees
        workdir = tmp_path / "work-file"
        workdir.write_text("x")
        argv = [str(one), str(two), "--workdir", str(workdir), "--resync"]
        assert main(argv) == EXIT_ERROR

    def test_missing_config_file(self, trees, tmp_path):
        _, _, argv = trees
        missing = str(tmp_path / "missing.yml")
        assert main([*argv, "--config", missing]) == EXIT_ERROR

    def test_config_file_supplies_options(self, trees, tmp_path):
        one, two, argv = trees
        (one / "keep.txt").write_text("k")
        (one / "skip.tmp").write_text("s")
        config = tmp_path / "bisync.yml"
        config.write_text("bisync:\n  exclude:\n    - '*.tmp'\n")

        assert main([*argv, "--resync", "--config", str(config)]) == EXIT_OK
        assert (two / "keep.txt").exists()
        assert not (two / "skip.tmp").exists()

    def test_env_var_supplies_options(self, trees, monkeypatch):
        one, two, argv = trees
        (one / "a.txt").write_text("a")
        assert main([*argv, "--resync"]) == EXIT_OK

        (one / "a.txt").unlink()
        monkeypatch.setenv("BISYNC_FORCE", "true")
        assert main(argv) == EXIT_OK
        assert not (two / "a.txt").exists()
