"""Mission-driven virtual Unix shell."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]

_CHECKOUT_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def _checkout_version() -> str | None:
    """Version declared by the source checkout this package was imported from, if any."""
    if not _CHECKOUT_PYPROJECT.is_file():
        return None
    with _CHECKOUT_PYPROJECT.open("rb") as handle:
        project = tomllib.load(handle).get("project", {})
    if project.get("name") != "termquest":
        return None
    return project.get("version")


try:
    __version__ = _checkout_version() or version("termquest")
except PackageNotFoundError:
    __version__ = "0+unknown"
