"""Claude Quota Monitor - adaptive tracking of session and weekly usage quotas."""

from ._version import __version__


__all__ = ["__version__"]
