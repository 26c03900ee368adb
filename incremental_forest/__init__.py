"""Incremental Forest.

Online, incremental decision trees that learn a scalar in [-1, 1] from
streamed records without retraining.
"""

from importlib.metadata import PackageNotFoundError, version as _pkg_version
from pathlib import Path
import tomllib

from .forest import Forest, Response, Explanation, same_class, combine_records


def _detect_version() -> str:
    """Return the installed distribution version, with a dev fallback.

    Falls back to the ``[project].version`` of the ``pyproject.toml`` next to
    the package when running from a source checkout.
    """
    try:
        return _pkg_version("incremental-forest")
    except PackageNotFoundError:
        pass

    pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
    if pyproject_path.is_file():
        data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
        project_version = data.get("project", {}).get("version")
        if isinstance(project_version, str) and project_version:
            return project_version

    return "0.0.0+unknown"


__version__: str = _detect_version()

__all__ = [
    "__version__",
    "Forest",
    "Response",
    "Explanation",
    "same_class",
    "combine_records",
]
