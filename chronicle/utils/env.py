"""Load local `.env` files into the process environment before settings are read."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

ENV_FILE_VARIABLE = "CHRONICLE_ENV_FILE"


def default_env_path() -> Path:
  """`CHRONICLE_ENV_FILE` when set, otherwise `.env` next to the `chronicle` package."""
  override = os.getenv(ENV_FILE_VARIABLE, "").strip()
  if override:
    return Path(override).expanduser()
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    return value[1:-1]
  # Unquoted values may carry a trailing " # comment".
  comment_at = value.find(" #")
  if comment_at != -1:
    value = value[:comment_at]
  return value.rstrip()


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse `KEY=value` lines, skipping blanks, comments and malformed lines."""
  parsed: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#"):
      continue
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
      continue
    parsed[key] = _unquote(value.strip())
  return parsed


def load_env_file(path: Path, *, override: bool = False) -> dict[str, str]:
  """Copy values from `path` into `os.environ` and return the ones applied.

  Existing variables win unless `override` is set; a missing file applies nothing.
  """
  if not path.is_file():
    return {}

  applied: dict[str, str] = {}
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied[key] = value
  return applied
