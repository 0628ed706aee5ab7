"""Version lookup for calltree: source checkout first, then installed metadata."""

import re
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _metadata_version
from pathlib import Path

_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"
_VERSION_LINE = re.compile(r'^version\s*=\s*["\']([^"\']+)["\']', re.MULTILINE)


def get_version() -> str:
    if _PYPROJECT.exists():
        if match := _VERSION_LINE.search(_PYPROJECT.read_text()):
            return match.group(1)
    try:
        return _metadata_version("calltree")
    except PackageNotFoundError:
        return "0.0.0"
