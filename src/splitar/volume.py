"""
One output volume: a temp file beside the target, an optional compression
subprocess and the tar stream written into it.

A volume is published with finish(), which renames the temp file into place.
Any other way out (abort(), or leaving a `with` block without finishing)
removes the temp file, so the target path is either absent or a complete
archive.
"""

import logging
import os
import subprocess
import tarfile
import tempfile
from enum import Enum
from pathlib import Path

from .cancel import CancellationToken, InterruptibleWriter
from .errors import IoFailure, SubprocessFailed, VolumeStateError
from .listing import print_listing
from .tarstream import TRAILER_SIZE, TarWriter

logger = logging.getLogger(__name__)

# 16384 is the default pipe buffer size on Linux; macOS grows up to it on
# demand. Half of it is used.
PIPE_BUFFER_SIZE = 1 << 13
DEFAULT_MODE = 0o666
DEFAULT_SHELL = "/bin/sh"


class VolumeState(Enum):
    ACTIVE = "active"
    FINISHING = "finishing"
    FINISHED = "finished"
    ABORTED = "aborted"


def volume_name(index, width):
    return f"{index:0{width}d}"


def current_umask():
    # Reading the umask means setting it; not safe against other threads.
    umask = os.umask(0)
    os.umask(umask)
    return umask


def set_umasked_mode(path, mode=DEFAULT_MODE):
    """mkstemp creates files only the owner can read; reset to the usual default."""
    if os.name != "posix":
        logger.warning(f"tempfile permissions on the output path {path} haven't been changed on this OS")
        return
    result_mode = mode & ~current_umask()
    try:
        os.chmod(path, result_mode)
    except OSError as exc:
        raise IoFailure(f"failed to set permission {result_mode:o} to the output file {path}") from exc


class Volume:
    def __init__(self, index, options, token=None):
        self.index = index
        self.name = volume_name(index, options.suffix_length)
        self.target = Path(f"{options.output_prefix}{self.name}")
        self.size = TRAILER_SIZE
        self.entries = 0
        self.prev_dir = None
        self.stored_dirs = set()
        self.state = VolumeState.ACTIVE
        self.temp_path = None
        self.process = None
        self._stream = None
        self._writer = None

        logger.info(f"Starting new volume: {self.target}")
        try:
            self._open(options.compress, token or CancellationToken())
        except BaseException:
            self.abort()
            raise

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.state is not VolumeState.FINISHED:
            self.abort()
        return False

    def __repr__(self):
        return f"<Volume {self.name} {self.state.value} size={self.size} entries={self.entries}>"

    def _open(self, compress, token):
        directory = self.target.parent
        logger.debug("Creating temp file for output")
        try:
            fd, temp_path = tempfile.mkstemp(prefix=self.target.name, suffix=".tmp", dir=directory)
        except OSError as exc:
            raise IoFailure(f"failed to create output tempfile in {directory}") from exc
        self.temp_path = Path(temp_path)
        logger.debug(f"Output temp file {self.temp_path}")

        if compress:
            shell = os.environ.get("SHELL") or DEFAULT_SHELL
            try:
                self.process = subprocess.Popen(
                    [shell, "-c", compress],
                    stdin=subprocess.PIPE,
                    stdout=fd,
                    bufsize=PIPE_BUFFER_SIZE,
                )
            except OSError as exc:
                raise IoFailure(f"failed to start {compress!r} with shell {shell!r}") from exc
            finally:
                os.close(fd)
            logger.info(f"Executing subprocess {self.process.pid}")
            raw = self.process.stdin
        else:
            raw = os.fdopen(fd, "wb", buffering=PIPE_BUFFER_SIZE)

        self._stream = InterruptibleWriter(raw, token)
        self._writer = TarWriter(self._stream, copy_bufsize=PIPE_BUFFER_SIZE)

    def _require_active(self, operation):
        if self.state is not VolumeState.ACTIVE:
            raise VolumeStateError(f"cannot {operation} volume {self.name} in state {self.state.value}")

    def _append(self, tarinfo, data, listing):
        self._require_active("write to")
        if listing is not None:
            try:
                print_listing(self.name, tarinfo, listing)
            except OSError as exc:
                raise IoFailure("failed to output verbose file info") from exc
        before = self._writer.written
        try:
            self._writer.append(tarinfo, data)
        except (OSError, ValueError, tarfile.TarError) as exc:
            raise IoFailure(f"failed to write {tarinfo.name!r} to output file {self.temp_path}") from exc
        self.size += self._writer.written - before

    def write(self, tarinfo, data=None, listing=None):
        """Append an input entry; listing is a text stream for the verbose line, if any."""
        self._append(tarinfo, data, listing)
        self.entries += 1

    def inject_dir(self, tarinfo, listing=None):
        """Append a copy of a directory header seen earlier, unless already present."""
        path = tarinfo.name.rstrip("/")
        if path in self.stored_dirs:
            logger.debug(f"Dirname {path!r} already inserted, skipping...")
            return False
        logger.debug(f"Dirname {path!r} is new for the volume, inserting...")
        self._append(tarinfo, None, listing)
        self.stored_dirs.add(path)
        return True

    def mark_stored(self, path):
        self.stored_dirs.add(path.rstrip("/"))

    def finish(self):
        """Terminate the archive, wait for the compressor and publish the file."""
        self._require_active("finish")
        self.state = VolumeState.FINISHING
        try:
            self._writer.finish()
            self._stream.close()
        except OSError as exc:
            raise IoFailure(f"failed to write final data to output file {self.temp_path}") from exc

        # The stream must be closed first so the subprocess sees end of input
        if self.process is not None:
            logger.info(f"Waiting subprocess {self.process.pid} to finish")
            try:
                returncode = self.process.wait()
            except OSError as exc:
                raise IoFailure("failed to wait for subprocess completion") from exc
            if returncode != 0:
                raise SubprocessFailed(returncode)

        logger.debug(f"Moving {self.temp_path} to {self.target}")
        try:
            os.replace(self.temp_path, self.target)
        except OSError as exc:
            raise IoFailure(f"failed to rename temp file {self.temp_path} to output file {self.target}") from exc
        self.temp_path = None
        set_umasked_mode(self.target)
        self.state = VolumeState.FINISHED
        logger.info(f"Finished volume {self.target} ({self.entries} entries, {self.size} bytes)")
        return self.target

    def abort(self):
        """Discard the volume. Safe to call repeatedly; never raises for cleanup failures."""
        if self.state in (VolumeState.FINISHED, VolumeState.ABORTED):
            return
        self.state = VolumeState.ABORTED
        logger.debug(f"Rolling back volume {self.target}")

        if self._stream is not None and not self._stream.closed:
            try:
                self._stream.close()
            except OSError as exc:
                logger.debug(f"Closing output of aborted volume {self.name} failed: {exc}")

        if self.process is not None:
            if self.process.poll() is None:
                logger.warning(f"Killing subprocess {self.process.pid} of aborted volume {self.name}")
                self.process.kill()
            self.process.wait()

        if self.temp_path is not None:
            try:
                os.unlink(self.temp_path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.error(f"Failed to remove temp file {self.temp_path}: {exc}")
            self.temp_path = None
