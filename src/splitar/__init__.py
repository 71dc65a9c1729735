"""
splitar - Split tar archives into size-bounded volumes

Repacks a single tar stream into a series of volumes no larger than a given
size, keeping entry order, optionally recreating directories split across
volumes and piping every volume through a compression command. Volumes are
published atomically.
"""

__version__ = "0.1.3"
__author__ = "Ivan Boldyrev"

from .main import main
from .splitter import TarSplitter, split_archive

__all__ = ["main", "TarSplitter", "split_archive"]
