from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


class EnvValueError(ValueError):
    pass


def load_env(*, override: bool = False) -> Path | None:
    """
    Load the first `.env` found (repo root, then CWD) into `os.environ`.

    Returns the path that was loaded, or None when no file exists.
    """

    repo_root = Path(__file__).resolve().parents[2]
    candidates = [
        repo_root / ".env",
        Path.cwd() / ".env",
    ]
    for path in candidates:
        if path.is_file():
            load_dotenv(dotenv_path=path, override=override)
            return path
    return None


def env_str(name: str, default: str | None = None) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or default


def env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise EnvValueError(f"{name} must be an integer (got {raw!r}).") from exc
    if minimum is not None and value < minimum:
        raise EnvValueError(f"{name} must be >= {minimum} (got {value}).")
    return value


def env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    raw = env_str(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise EnvValueError(f"{name} must be a number (got {raw!r}).") from exc
    if minimum is not None and value < minimum:
        raise EnvValueError(f"{name} must be >= {minimum} (got {value}).")
    return value
