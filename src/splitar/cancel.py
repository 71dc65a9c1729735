"""
Cooperative cancellation for the blocking I/O of a split run.

The token is an explicit object handed to every component that reads or
writes, so the core can be driven and interrupted from tests without
installing signal handlers.
"""

from .errors import Interrupted


class CancellationToken:
    def __init__(self):
        self._cancelled = False

    def cancel(self, *_signal_args):
        """Request interruption. Usable directly as a signal handler."""
        self._cancelled = True

    @property
    def cancelled(self):
        return self._cancelled

    def check(self):
        if self._cancelled:
            raise Interrupted()


class InterruptibleReader:
    """Read-side wrapper failing fast with Interrupted once the token is set."""

    def __init__(self, raw, token):
        self.raw = raw
        self.token = token

    def read(self, size=-1):
        self.token.check()
        return self.raw.read(size)

    def readable(self):
        return True

    def close(self):
        self.raw.close()


class InterruptibleWriter:
    """Write-side counterpart of InterruptibleReader."""

    def __init__(self, raw, token):
        self.raw = raw
        self.token = token

    def write(self, data):
        self.token.check()
        return self.raw.write(data)

    def flush(self):
        self.token.check()
        self.raw.flush()

    def writable(self):
        return True

    def close(self):
        self.raw.close()

    @property
    def closed(self):
        return self.raw.closed
