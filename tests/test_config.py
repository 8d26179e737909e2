"""Tests for bisync.config: run option resolution and precedence.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models).  This tests load_options()
and the environment variable helpers.
"""

import pytest

from bisync.config import get_bool_env, load_options
from bisync.config_schema import DEFAULT_WORKDIR, CheckSyncMode

_ENV_KEYS = (
    "BISYNC_WORKDIR",
    "BISYNC_CHECK_FILENAME",
    "BISYNC_MAX_DELETE",
    "BISYNC_TRANSFERS",
    "BISYNC_RESILIENT",
    "BISYNC_FORCE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


# -------------------------------------------------------------------------
# get_bool_env()
# -------------------------------------------------------------------------


class TestGetBoolEnv:
    """Tests for get_bool_env()."""

    def test_unset_returns_none(self, monkeypatch):
        monkeypatch.delenv("BISYNC_TEST_FLAG", raising=False)
        assert get_bool_env("BISYNC_TEST_FLAG") is None

    @pytest.mark.parametrize("raw", ["true", "1", "YES", " on "])
    def test_truthy_values(self, monkeypatch, raw):
        monkeypatch.setenv("BISYNC_TEST_FLAG", raw)
        assert get_bool_env("BISYNC_TEST_FLAG") is True

    @pytest.mark.parametrize("raw", ["false", "0", "no", ""])
    def test_falsy_values(self, monkeypatch, raw):
        monkeypatch.setenv("BISYNC_TEST_FLAG", raw)
        assert get_bool_env("BISYNC_TEST_FLAG") is False


# -------------------------------------------------------------------------
# load_options()
# -------------------------------------------------------------------------


class TestLoadOptions:
    """Tests for load_options() precedence and validation."""

    def test_defaults(self):
        options = load_options()
        assert options.workdir == DEFAULT_WORKDIR
        assert options.max_delete == 50
        assert options.check_sync == CheckSyncMode.TRUE

    def test_yaml_fallbacks_apply(self):
        options = load_options(yaml_fallbacks={"max_delete": 10})
        assert options.max_delete == 10

    def test_env_overrides_yaml(self, monkeypatch):
        monkeypatch.setenv("BISYNC_MAX_DELETE", "20")
        monkeypatch.setenv("BISYNC_WORKDIR", " /tmp/bisync ")
        options = load_options(
            yaml_fallbacks={"max_delete": 10, "workdir": "/yaml"}
        )
        assert options.max_delete == 20
        assert options.workdir == "/tmp/bisync"

    def test_cli_overrides_env(self, monkeypatch):
        monkeypatch.setenv("BISYNC_TRANSFERS", "8")
        monkeypatch.setenv("BISYNC_FORCE", "true")
        options = load_options(cli_overrides={"transfers": 2, "force": False})
        assert options.transfers == 2
        assert options.force is False

    def test_cli_none_values_ignored(self, monkeypatch):
        monkeypatch.setenv("BISYNC_RESILIENT", "yes")
        options = load_options(cli_overrides={"resilient": None})
        assert options.resilient is True

    def test_invalid_env_number(self, monkeypatch):
        monkeypatch.setenv("BISYNC_MAX_DELETE", "lots")
        with pytest.raises(ValueError, match="Invalid BISYNC_MAX_DELETE"):
            load_options()

    def test_env_number_out_of_range(self, monkeypatch):
        monkeypatch.setenv("BISYNC_TRANSFERS", "0")
        with pytest.raises(ValueError, match="between 1 and 64"):
            load_options()

    def test_invalid_value_names_its_source(self):
        with pytest.raises(ValueError, match=r"max_delete \(config file\)"):
            load_options(yaml_fallbacks={"max_delete": 500})

    def test_invalid_cli_value_names_command_line(self):
        with pytest.raises(ValueError, match=r"transfers \(command line\)"):
            load_options(cli_overrides={"transfers": 100})
