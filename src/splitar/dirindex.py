"""
Directory bookkeeping for recreating directories in later volumes.

Tar member names always use '/' regardless of the host, so paths are handled
as plain strings here and never through os.path.
"""

import copy

SEPARATOR = "/"


def parent_dir(path):
    """Return the directory part of a tar member name, or '' at top level."""
    if path.endswith(SEPARATOR):
        path = path[:-1]
    pos = path.rfind(SEPARATOR)
    if pos < 0:
        return ""
    return path[:pos]


def ancestor_paths(path):
    """Return path and all of its ancestors, root first.

    >>> ancestor_paths("a/b/c")
    ['a', 'a/b', 'a/b/c']
    """
    paths = []
    for pos, char in enumerate(path):
        if char == SEPARATOR and path[:pos].strip(SEPARATOR):
            paths.append(path[:pos])
    if path.strip(SEPARATOR):
        paths.append(path.rstrip(SEPARATOR))
    return paths


class DirectoryIndex:
    """Most recently seen header of every directory in the input stream."""

    def __init__(self):
        self._headers = {}

    def __len__(self):
        return len(self._headers)

    def __contains__(self, path):
        return path.rstrip(SEPARATOR) in self._headers

    def remember(self, tarinfo):
        self._headers[tarinfo.name.rstrip(SEPARATOR)] = copy.copy(tarinfo)

    def lookup(self, path):
        return self._headers.get(path.rstrip(SEPARATOR))

    def ancestors(self, path):
        """Stored headers for path and each of its ancestors, root to leaf."""
        return [
            self._headers[candidate]
            for candidate in ancestor_paths(path)
            if candidate in self._headers
        ]
