"""
Version of the confidential contract SDK.

Installed distributions report their metadata; a source checkout falls back
to the ``[project]`` table of pyproject.toml.
"""
import importlib.metadata
import pathlib

import tomli

DISTRIBUTION = "confidential-sdk"
UNKNOWN_VERSION = "0.1.0"


def _version_from_pyproject() -> str:
    pyproject = pathlib.Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with pyproject.open("rb") as f:
            return tomli.load(f)["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        return UNKNOWN_VERSION


try:
    __version__ = importlib.metadata.version(DISTRIBUTION)
except importlib.metadata.PackageNotFoundError:
    __version__ = _version_from_pyproject()
