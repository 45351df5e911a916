"""Load environment variables from ``.env`` files.

Two locations are consulted, in order: the working directory's ``.env`` and
``~/.config/population-blindspots/.env``. A key found in the first file is not
overridden by the second, and neither overrides a non-blank value already in
the process environment.
"""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_ENV_PATH = Path.home() / ".config" / "population-blindspots" / ".env"


def default_env_paths() -> list[Path]:
    """Return the ``.env`` locations searched by :func:`load_dotenv`."""
    return [Path.cwd() / ".env", DEFAULT_ENV_PATH]


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_dotenv(path: Path) -> dict[str, str]:
    """Parse a ``.env`` file into a dict of key-value pairs.

    Supports ``KEY=VALUE``, quoted values, an ``export`` prefix, blank lines
    and ``#`` comments. No variable expansion.
    """
    result: dict[str, str] = {}
    if not path.is_file():
        return result

    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        line = line.removeprefix("export ").lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        result[key] = _unquote(value.strip())
    return result


def load_dotenv(paths: list[Path] | None = None) -> dict[str, str]:
    """Inject vars from *paths* into ``os.environ`` where currently unset.

    Blank env values count as unset.

    Returns:
        Dict of vars that were actually injected.
    """
    if paths is None:
        paths = default_env_paths()
    injected: dict[str, str] = {}
    for path in paths:
        for key, value in parse_dotenv(path).items():
            if key in injected:
                continue
            if (os.environ.get(key) or "").strip():
                continue
            os.environ[key] = value
            injected[key] = value
    return injected
