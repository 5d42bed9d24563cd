"""Path prefixing and directory emulation for b2fs.

B2 buckets are flat: a key such as ``user42/videos/clip.mp4`` has no
``videos`` directory behind it. The adapter scopes every caller path under
a fixed prefix and synthesizes directory entries from the ``/`` boundaries
of the keys it lists.
"""

import posixpath
from collections.abc import Iterable

from b2fs.models import ListingEntry


def normalize_path(path: str) -> str:
    """Strip the leading slashes and backslashes callers may send."""
    return path.lstrip("/\\")


def parent_dir(path: str) -> str:
    """Return the parent directory of ``path``, ``""`` at the root."""
    dirname = posixpath.dirname(path)
    return "" if dirname in (".", "/") else dirname


class PathPrefixer:
    """Maps caller paths to store keys under a fixed prefix and back.

    Attributes:
        prefix: The configured base path without leading slashes.
    """

    def __init__(self, prefix: str = "") -> None:
        self.prefix = (prefix or "").lstrip("/")

    def apply(self, path: str) -> str:
        """Map a caller path to a store key.

        Leading slashes/backslashes of ``path`` are dropped before the
        prefix is prepended, and the result never starts with ``/``.
        """
        return (self.prefix + normalize_path(path)).lstrip("/")

    def remove(self, key: str) -> str:
        """Map a store key back to a caller path."""
        if self.prefix and key.startswith(self.prefix):
            key = key[len(self.prefix):]
        return key.lstrip("/")


def _ancestors(path: str) -> list[str]:
    """``"a/b/c.txt"`` -> ``["a", "a/b"]``."""
    segments = path.split("/")[:-1]
    return ["/".join(segments[: i + 1]) for i in range(len(segments)) if segments[i]]


def emulate_directories(entries: Iterable[ListingEntry]) -> list[ListingEntry]:
    """Add a ``dir`` entry for every ancestor directory of the listed files.

    Each synthesized directory appears once, after the real entries, in
    the order it was first seen. Paths that are already listed are not
    synthesized again.

    Args:
        entries: File entries from a flat listing.

    Returns:
        The entries followed by the synthesized directory entries.
    """
    listing = list(entries)
    seen = {entry.path for entry in listing}
    directories: list[ListingEntry] = []

    for entry in listing:
        for ancestor in _ancestors(entry.path):
            if ancestor in seen:
                continue
            seen.add(ancestor)
            directories.append(
                ListingEntry(type="dir", path=ancestor, dirname=parent_dir(ancestor))
            )

    return listing + directories
