import re
from dataclasses import dataclass
from typing import Optional

from .tarstream import TRAILER_SIZE

DEFAULT_SUFFIX_LENGTH = 5

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:([kmgtpe])i?)?b?\s*$", re.IGNORECASE)
_UNITS = "kmgtpe"


def parse_size(text):
    """Parse a byte count with an optional binary unit: 512, 100K, 1.5MiB, 2G."""
    match = _SIZE_RE.match(text)
    if not match:
        raise ValueError(f"invalid size: {text!r}")
    number, unit = match.group(1), (match.group(2) or "").lower()
    multiplier = 1024 ** (_UNITS.index(unit) + 1) if unit else 1
    if "." in number:
        return int(float(number) * multiplier)
    return int(number) * multiplier


@dataclass
class SplitOptions:
    output_prefix: str
    max_size: int
    fail_on_large_file: bool = False
    recreate_dirs: bool = False
    compress: Optional[str] = None
    suffix_length: int = DEFAULT_SUFFIX_LENGTH
    verbose: bool = False

    def validate(self):
        if self.max_size < TRAILER_SIZE:
            raise ValueError(f"max size must be at least {TRAILER_SIZE} bytes, got {self.max_size}")
        if self.suffix_length < 1:
            raise ValueError(f"suffix length must be positive, got {self.suffix_length}")
        if self.compress is not None and not self.compress.strip():
            raise ValueError("compress command is empty")
        if not self.output_prefix:
            raise ValueError("output prefix is empty")
