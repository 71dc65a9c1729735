EXIT_FAILURE = 1
EXIT_FILE_TOO_LARGE = 3


class SplitarError(Exception):
    """Base class for splitar errors."""

    exit_code = EXIT_FAILURE


class FileTooLarge(SplitarError):
    exit_code = EXIT_FILE_TOO_LARGE

    def __init__(self, path):
        super().__init__(f"file {path!r} with its header is larger than --max-size")
        self.path = path


class IoFailure(SplitarError):
    pass


class SubprocessFailed(SplitarError):
    def __init__(self, code):
        super().__init__(f"subprocess exited with error: {code}")
        self.code = code


class Interrupted(SplitarError):
    def __init__(self, message="interrupted"):
        super().__init__(message)


class VolumeStateError(SplitarError):
    pass
