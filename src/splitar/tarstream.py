"""
Sequential tar reading and writing on top of the standard tarfile module.

tarfile.TarFile in write mode pads archives to a 10240-byte record and keeps
every member in memory, so volumes are written with TarWriter, which only
borrows header serialization and block copying from tarfile. The bytes it
produces are exactly what entry_cost() accounts for.
"""

import copy
import logging
import tarfile

from .errors import IoFailure

logger = logging.getLogger(__name__)

BLOCK_SIZE = tarfile.BLOCKSIZE
# Two zero blocks terminate an archive
TRAILER_SIZE = 2 * BLOCK_SIZE

HEADER_FORMAT = tarfile.PAX_FORMAT
HEADER_ENCODING = "utf-8"
HEADER_ERRORS = "surrogateescape"

SPARSE_PAX_PREFIX = "GNU.sparse."


def has_data(tarinfo):
    """Whether a member is followed by data blocks (same rule tarfile uses to skip them)."""
    return tarinfo.isreg() or tarinfo.type not in tarfile.SUPPORTED_TYPES


def is_sparse(tarinfo):
    return tarinfo.type == tarfile.GNUTYPE_SPARSE or tarinfo.issparse()


def output_header(tarinfo):
    """The header as it is written to a volume.

    Sparse members are written as regular files holding their expanded data:
    tobuf() cannot serialize a sparse map, and extractfile() already fills in
    the holes.
    """
    if not is_sparse(tarinfo):
        return tarinfo
    regular = copy.copy(tarinfo)
    regular.type = tarfile.REGTYPE
    regular.sparse = None
    regular.pax_headers = {
        key: value for key, value in tarinfo.pax_headers.items() if not key.startswith(SPARSE_PAX_PREFIX)
    }
    return regular


def header_bytes(tarinfo):
    tarinfo = output_header(tarinfo)
    try:
        return tarinfo.tobuf(HEADER_FORMAT, HEADER_ENCODING, HEADER_ERRORS)
    except ValueError as exc:
        # e.g. device numbers too wide for their octal fields
        raise IoFailure(f"cannot encode header of {tarinfo.name!r}") from exc


def data_size(tarinfo):
    if not has_data(tarinfo):
        return 0
    blocks, remainder = divmod(tarinfo.size, BLOCK_SIZE)
    if remainder:
        blocks += 1
    return blocks * BLOCK_SIZE


def entry_cost(tarinfo):
    """Bytes the member occupies in a volume: header blocks plus padded data."""
    return len(header_bytes(tarinfo)) + data_size(tarinfo)


def iter_entries(fileobj):
    """Yield (tarinfo, data) pairs from a non-seekable tar stream.

    data is a file object for members carrying data and None otherwise. It
    must be consumed before the next pair is requested.
    """
    try:
        with tarfile.open(fileobj=fileobj, mode="r|") as tar:
            while True:
                tarinfo = tar.next()
                if tarinfo is None:
                    break
                logger.debug(f"entry: {tarinfo.name!r}@{tarinfo.size}")
                data = tar.extractfile(tarinfo) if has_data(tarinfo) else None
                yield tarinfo, data
                # stream mode never revisits members
                tar.members.clear()
    except (OSError, tarfile.TarError) as exc:
        raise IoFailure(f"failed to read input archive: {exc}") from exc


class TarWriter:
    def __init__(self, fileobj, copy_bufsize=None):
        self.fileobj = fileobj
        self.copy_bufsize = copy_bufsize
        self.written = 0

    def append(self, tarinfo, data=None):
        buf = header_bytes(tarinfo)
        self.fileobj.write(buf)
        self.written += len(buf)
        if not has_data(tarinfo) or tarinfo.size == 0:
            return
        if data is None:
            raise ValueError(f"member {tarinfo.name!r} needs {tarinfo.size} bytes of data")
        tarfile.copyfileobj(data, self.fileobj, tarinfo.size, bufsize=self.copy_bufsize)
        remainder = tarinfo.size % BLOCK_SIZE
        if remainder:
            self.fileobj.write(tarfile.NUL * (BLOCK_SIZE - remainder))
        self.written += data_size(tarinfo)

    def finish(self):
        self.fileobj.write(tarfile.NUL * TRAILER_SIZE)
        self.written += TRAILER_SIZE
        self.fileobj.flush()
