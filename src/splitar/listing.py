"""Human readable `tar tv`-like listing of the headers written to volumes."""

import sys
import tarfile
from datetime import datetime

from tqdm.auto import tqdm

_TYPE_CHARS = {
    tarfile.LNKTYPE: "h",
    tarfile.SYMTYPE: "l",
    tarfile.CHRTYPE: "c",
    tarfile.BLKTYPE: "b",
    tarfile.DIRTYPE: "d",
    tarfile.FIFOTYPE: "p",
    tarfile.GNUTYPE_LONGNAME: "L",
    tarfile.GNUTYPE_LONGLINK: "L",
}
_REGULAR_TYPES = (tarfile.REGTYPE, tarfile.AREGTYPE, tarfile.CONTTYPE, tarfile.GNUTYPE_SPARSE)


def type_char(tarinfo):
    if tarinfo.type in _REGULAR_TYPES:
        return "d" if tarinfo.name.endswith("/") else "-"
    return _TYPE_CHARS.get(tarinfo.type, "?")


def format_mode(mode):
    # TODO render setuid, setgid and sticky bits like ls does
    flags = []
    for shift in (6, 3, 0):
        bits = (mode >> shift) & 0o7
        flags.append("r" if bits & 4 else "-")
        flags.append("w" if bits & 2 else "-")
        flags.append("x" if bits & 1 else "-")
    return "".join(flags)


def format_mtime(mtime):
    try:
        return datetime.fromtimestamp(int(mtime)).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        # outside what the platform can represent as a local date
        return str(int(mtime))


def format_listing(volume_name, tarinfo):
    if tarinfo.ischr() or tarinfo.isblk():
        size = f"{tarinfo.devmajor}:{tarinfo.devminor}"
    else:
        size = str(tarinfo.size)
    timestamp = format_mtime(tarinfo.mtime)
    path = tarinfo.name
    if tarinfo.isdir() and not path.endswith("/"):
        path += "/"
    line = (
        f"{volume_name} {type_char(tarinfo)}{format_mode(tarinfo.mode)} "
        f"{tarinfo.uname} {tarinfo.gname} {size:>12} {timestamp} {path}"
    )
    if tarinfo.islnk():
        line += f" link to {tarinfo.linkname}"
    elif tarinfo.issym():
        line += f" -> {tarinfo.linkname}"
    return line


def print_listing(volume_name, tarinfo, file=None):
    tqdm.write(format_listing(volume_name, tarinfo), file=file or sys.stderr)
