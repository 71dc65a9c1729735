"""
Sequential tar to size-bounded volumes splitter.

Entries are taken one at a time, in input order. Before an entry is written
the active volume is rotated if the entry (plus any directory headers that
have to be recreated for it) would push the volume past the maximum size.
"""

import logging
import sys

from tqdm.auto import tqdm

from .cancel import CancellationToken, InterruptibleReader
from .dirindex import DirectoryIndex, parent_dir
from .errors import FileTooLarge
from .tarstream import TRAILER_SIZE, entry_cost, iter_entries
from .volume import Volume

logger = logging.getLogger(__name__)


class TarSplitter:
    def __init__(self, options, token=None, listing=None):
        options.validate()
        self.options = options
        self.token = token or CancellationToken()
        self.listing = (listing or sys.stderr) if options.verbose else None
        self.dirs = DirectoryIndex()
        self.volume = None
        self.volume_index = 0
        self.published = []
        self.total_entries = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.abort()
        return False

    def _active_volume(self):
        if self.volume is None:
            self.volume = Volume(self.volume_index, self.options, self.token)
        return self.volume

    def _rotate(self):
        self.published.append(self.volume.finish())
        self.volume = None
        self.volume_index += 1
        return self._active_volume()

    def _pending_dirs(self, volume, parent):
        """Known directory headers the volume lacks for an entry under parent."""
        if not self.options.recreate_dirs or not parent:
            return []
        if parent == volume.prev_dir:
            logger.debug("Dirname is same, skip it.")
            return []
        return [
            header for header in self.dirs.ancestors(parent)
            if header.name.rstrip("/") not in volume.stored_dirs
        ]

    def process(self, tarinfo, data=None):
        self.token.check()
        max_size = self.options.max_size
        cost = entry_cost(tarinfo)

        if self.options.fail_on_large_file and TRAILER_SIZE + cost > max_size:
            raise FileTooLarge(tarinfo.name)

        volume = self._active_volume()
        parent = parent_dir(tarinfo.name)
        pending = self._pending_dirs(volume, parent)
        needed = cost + sum(entry_cost(header) for header in pending)

        # An empty volume takes the entry whatever its size
        if volume.entries and volume.size + needed > max_size:
            logger.debug(f"{tarinfo.name!r} needs {needed} bytes, volume {volume.name} has {volume.size}")
            volume = self._rotate()
            pending = self._pending_dirs(volume, parent)

        for header in pending:
            volume.inject_dir(header, self.listing)
        if self.options.recreate_dirs and parent:
            volume.prev_dir = parent

        volume.write(tarinfo, data, self.listing)
        self.total_entries += 1

        if self.options.recreate_dirs and tarinfo.isdir():
            self.dirs.remember(tarinfo)
            volume.mark_stored(tarinfo.name)

    def finish(self):
        """Publish the last volume and return the paths of all published volumes."""
        volume = self._active_volume()
        self.published.append(volume.finish())
        self.volume = None
        logger.info(f"Split {self.total_entries} entries into {len(self.published)} volumes")
        return list(self.published)

    def abort(self):
        if self.volume is not None:
            self.volume.abort()
            self.volume = None


def split_archive(fileobj, options, token=None, listing=None, progress=False):
    """Split the tar stream read from fileobj; return the published volume paths."""
    token = token or CancellationToken()
    reader = InterruptibleReader(fileobj, token)
    with TarSplitter(options, token=token, listing=listing) as splitter:
        with tqdm(desc="Splitting", unit="entry", dynamic_ncols=True, disable=not progress) as pbar:
            for tarinfo, data in iter_entries(reader):
                splitter.process(tarinfo, data)
                pbar.update(1)
                pbar.set_postfix(volume=splitter.volume_index, refresh=False)
        return splitter.finish()
