import io
import os
import subprocess
import sys
import tarfile
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]


def make_tarinfo(name, type=tarfile.REGTYPE, data=None, linkname=None):
    ti = tarfile.TarInfo(name)
    ti.type = type
    if linkname is not None:
        ti.linkname = linkname
    if data is not None:
        ti.size = len(data)
    return ti


def file_member(name, size, fill=b"0"):
    data = (fill * size)[:size]
    return make_tarinfo(name, tarfile.REGTYPE, data=data), data


def dir_member(name):
    return make_tarinfo(name, tarfile.DIRTYPE), None


def tar_bytes(members):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.PAX_FORMAT) as tar:
        for tarinfo, data in members:
            tar.addfile(tarinfo, io.BytesIO(data) if data is not None else None)
    return buf.getvalue()


def write_tar(path, members):
    Path(path).write_bytes(tar_bytes(members))
    return path


def read_members(path):
    """(name, type, data) of every member of a volume, in order."""
    result = []
    with tarfile.open(str(path), mode="r:") as tar:
        for tarinfo in tar:
            data = None
            if tarinfo.isreg():
                data = tar.extractfile(tarinfo).read()
            result.append((tarinfo.name, tarinfo.type, data))
    return result


def read_names(path):
    return [name for name, _, _ in read_members(path)]


def listdir(path):
    return sorted(os.listdir(str(path)))


def _octal(value, digits=12):
    return tarfile.itn(value, digits, tarfile.GNU_FORMAT)


def gnu_sparse_member(name, chunk, offset, realsize):
    """Raw blocks of an old GNU format sparse member ('S' type) with one data chunk."""
    stored = chunk.ljust(tarfile.BLOCKSIZE, b"\x00")
    ti = make_tarinfo(name, tarfile.GNUTYPE_SPARSE)
    ti.size = len(stored)
    buf = bytearray(ti.tobuf(tarfile.GNU_FORMAT))
    buf[386:398] = _octal(offset)
    buf[398:410] = _octal(len(stored))
    buf[482] = 0
    buf[483:495] = _octal(realsize)
    buf[148:156] = b" " * 8
    buf[148:155] = b"%06o\x00" % tarfile.calc_chksums(bytes(buf))[0]
    return bytes(buf) + stored


def pax_sparse_member(name, chunk, offset, realsize):
    """Raw blocks of a PAX sparse member (GNU sparse format 1.0) with one data chunk."""
    stored = chunk.ljust(tarfile.BLOCKSIZE, b"\x00")
    sparse_map = f"1\n{offset}\n{len(stored)}\n".encode().ljust(tarfile.BLOCKSIZE, b"\x00")
    ti = make_tarinfo(f"GNUSparseFile.0/{name}")
    ti.size = len(sparse_map) + len(stored)
    ti.pax_headers = {
        "GNU.sparse.major": "1",
        "GNU.sparse.minor": "0",
        "GNU.sparse.name": name,
        "GNU.sparse.realsize": str(realsize),
    }
    return ti.tobuf(tarfile.PAX_FORMAT) + sparse_map + stored


def expanded_sparse_data(chunk, offset, realsize):
    stored = chunk.ljust(tarfile.BLOCKSIZE, b"\x00")
    return (b"\x00" * offset + stored).ljust(realsize, b"\x00")


class Dir:
    def __init__(self, name, children):
        self.name = name
        self.children = children

    def members(self, parent_path=""):
        self_path = parent_path + self.name + "/"
        yield dir_member(self_path)
        for child in self.children:
            yield from child.members(self_path)


class File:
    def __init__(self, name, size):
        self.name = name
        self.size = size

    def members(self, parent_path=""):
        yield file_member(parent_path + self.name, self.size)


# Children of nested1 come back after nested2, and somedir is repeated.
DIRS = Dir(
    "thedir",
    [
        Dir(
            "nested1",
            [
                File("file1", 10240),
                Dir("somedir", []),
                File("file2", 10240),
            ],
        ),
        Dir(
            "nested2",
            [
                File("file1", 10240),
                File("file2", 10240),
            ],
        ),
        File("nested1/out-of-order", 1024),
        Dir("nested1/somedir", []),
    ],
)


def cli_command(args):
    return [sys.executable, "-m", "splitar"] + [str(arg) for arg in args]


def cli_env(env=None):
    full_env = os.environ.copy()
    src = str(REPO_ROOT / "src")
    existing = full_env.get("PYTHONPATH", "")
    full_env["PYTHONPATH"] = src if not existing else f"{src}{os.pathsep}{existing}"
    full_env.pop("SPLITAR_LOG", None)
    if env:
        full_env.update(env)
    return full_env


def run_cli(args, *, expect=0, input=None, env=None):
    cmd = cli_command(args)
    proc = subprocess.run(
        cmd,
        input=input,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=cli_env(env),
    )
    if expect is not None and proc.returncode != expect:
        raise AssertionError(
            f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\n"
            f"STDOUT:\n{proc.stdout!r}\nSTDERR:\n{proc.stderr!r}"
        )
    return proc
