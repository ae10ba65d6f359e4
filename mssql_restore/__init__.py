"""Restore SQL Server backups under a new name with relocated data/log files."""

from .__version__ import __version__

__all__ = ["__version__"]
