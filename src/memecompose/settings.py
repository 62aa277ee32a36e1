"""Service configuration read from environment variables.

  MEMECOMPOSE_UPLOAD_DIR     upload temp dir (default <tmp>/uploads)
  MEMECOMPOSE_OUTPUT_DIR     output temp dir (default <tmp>/outputs)
  MEMECOMPOSE_MAX_UPLOAD_MB  per-file upload limit in MB (default 100)
  PORT                       HTTP port for ``memecompose serve`` (default 3000)

The ffmpeg binary override (MEMECOMPOSE_FFMPEG) is read in common.py.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path


def _default_dir(name: str) -> Path:
    return Path(tempfile.gettempdir()) / name


def _int_env(env: dict, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    upload_dir: Path = _default_dir("uploads")
    output_dir: Path = _default_dir("outputs")
    max_upload_bytes: int = 100 * 1024 * 1024
    port: int = 3000

    @classmethod
    def from_env(cls, env: dict | None = None) -> "Settings":
        env = os.environ if env is None else env
        max_mb = _int_env(env, "MEMECOMPOSE_MAX_UPLOAD_MB", 100)
        if max_mb <= 0:
            raise ValueError(f"MEMECOMPOSE_MAX_UPLOAD_MB must be > 0, got {max_mb}")
        return cls(
            upload_dir=Path(env.get("MEMECOMPOSE_UPLOAD_DIR") or _default_dir("uploads")),
            output_dir=Path(env.get("MEMECOMPOSE_OUTPUT_DIR") or _default_dir("outputs")),
            max_upload_bytes=max_mb * 1024 * 1024,
            port=_int_env(env, "PORT", 3000),
        )
