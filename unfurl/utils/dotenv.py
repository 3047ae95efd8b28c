"""Best-effort .env loader.

Values from `.env` at the project root are applied to os.environ before
settings are built, without overriding variables that are already set.
"""

from __future__ import annotations

import os
from pathlib import Path


def _find_project_root(start: Path) -> Path:
    cur = start
    while True:
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            return start
        cur = cur.parent


def _parse_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if "=" not in line:
        return None
    key, value = (part.strip() for part in line.split("=", 1))
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def load_dotenv_if_present(*, dotenv_path: Path | None = None) -> bool:
    """Load `.env` into os.environ.

    Blank lines, comments and a leading `export ` are tolerated; quoted
    values lose their quotes. Existing os.environ entries win.

    Returns:
        True if a dotenv file existed and was read, else False.
    """
    if dotenv_path is None:
        dotenv_path = _find_project_root(Path(__file__).resolve()) / ".env"

    if not dotenv_path.exists():
        return False

    try:
        text = dotenv_path.read_text(encoding="utf-8")
    except OSError:
        return False

    for raw_line in text.splitlines():
        parsed = _parse_line(raw_line)
        if parsed is None:
            continue
        key, value = parsed
        os.environ.setdefault(key, value)
    return True
