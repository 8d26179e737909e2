"""Run option resolution for the bisync CLI.

Combines CLI args, environment variables, .env files and YAML config
fallbacks into one validated ``BisyncOptions``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    BISYNC_WORKDIR: Directory for listings and lock files
    BISYNC_CHECK_FILENAME: Base name of access check files
    BISYNC_MAX_DELETE: Delete guard threshold in percent (0-100)
    BISYNC_TRANSFERS: Number of parallel transfers (1-64)
    BISYNC_RESILIENT: Keep listings after retryable errors (true/false)
    BISYNC_FORCE: Bypass safety guards (true/false)
"""

import logging
import os
from typing import Any

from pydantic import ValidationError

from bisync.config_schema import BisyncOptions

logger = logging.getLogger(__name__)

_STRING_ENV = {
    "workdir": "BISYNC_WORKDIR",
    "check_filename": "BISYNC_CHECK_FILENAME",
}
_INT_ENV = {
    "max_delete": ("BISYNC_MAX_DELETE", 0, 100),
    "transfers": ("BISYNC_TRANSFERS", 1, 64),
}
_BOOL_ENV = {
    "resilient": "BISYNC_RESILIENT",
    "force": "BISYNC_FORCE",
}


def get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.strip().lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        value = None
    if value is None or not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_options(
    cli_overrides: dict[str, Any] | None = None,
    yaml_fallbacks: dict[str, Any] | None = None,
) -> BisyncOptions:
    """Resolve run options with unified precedence.

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        cli_overrides: Options given on the command line.  Only keys the
            user actually set should be present.
        yaml_fallbacks: The ``bisync`` section of the YAML config.

    Returns:
        Validated ``BisyncOptions``.

    Raises:
        ValueError: If any source holds an invalid value.  The message
            names the source of each offending option.
    """
    values: dict[str, Any] = {}
    sources: dict[str, str] = {}

    for key, value in (yaml_fallbacks or {}).items():
        values[key] = value
        sources[key] = "config file"

    for key, env_key in _STRING_ENV.items():
        raw = os.getenv(env_key)
        if raw:
            values[key] = raw.strip()
            sources[key] = f"environment variable {env_key}"
    for key, (env_key, low, high) in _INT_ENV.items():
        number = _get_int_env(env_key, low, high)
        if number is not None:
            values[key] = number
            sources[key] = f"environment variable {env_key}"
    for key, env_key in _BOOL_ENV.items():
        flag = get_bool_env(env_key)
        if flag is not None:
            values[key] = flag
            sources[key] = f"environment variable {env_key}"

    for key, value in (cli_overrides or {}).items():
        if value is None:
            continue
        values[key] = value
        sources[key] = "command line"

    try:
        options = BisyncOptions(**values)
    except ValidationError as exc:
        problems = []
        for err in exc.errors():
            field = str(err["loc"][0]) if err["loc"] else "options"
            origin = sources.get(field, "defaults")
            problems.append(f"{field} ({origin}): {err['msg']}")
        raise ValueError(
            "Invalid bisync options: " + "; ".join(problems)
        ) from None

    logger.debug(
        "Resolved options from %s",
        ", ".join(sorted(set(sources.values()))) or "defaults",
    )
    return options
