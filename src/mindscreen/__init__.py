"""mindscreen: questionnaire-based mental health self-assessment core."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("mindscreen")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
__all__ = ["__version__"]
