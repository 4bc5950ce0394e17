"""Filesystem-backed blob store.

Objects are addressed by slash-separated keys relative to
``settings.blob_dir``; node images live under::

    {collection}/{node_id}/images/{filename}

Download URLs are resolved against ``settings.public_base_url`` and served
by the API's ``/blobs/{key}`` route.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import quote

from inquiry.config import settings


@dataclass
class BlobRef:
    key: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.key).name


def image_prefix(collection: str, node_id: str) -> str:
    return f"{_segment(collection)}/{_segment(node_id)}/images"


def _segment(value: str) -> str:
    if not value or "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"Invalid blob path segment {value!r}")
    return value


class BlobStore:
    """Upload / list / resolve objects under a root directory."""

    def __init__(self, root: Optional[Path] = None, base_url: Optional[str] = None) -> None:
        self.root = Path(root or settings.blob_dir)
        self.base_url = (base_url or settings.public_base_url).rstrip("/")

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or any(p in ("..", ".") for p in parts) or PurePosixPath(key).is_absolute():
            raise ValueError(f"Invalid blob key {key!r}")
        return self.root.joinpath(*parts)

    def upload(self, key: str, data: bytes) -> BlobRef:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return BlobRef(key=key)

    def list(self, prefix: str) -> list[BlobRef]:
        """Return every object directly under *prefix*, sorted by key."""
        directory = self._path(prefix)
        if not directory.is_dir():
            return []
        return [
            BlobRef(key=f"{prefix}/{p.name}")
            for p in sorted(directory.iterdir())
            if p.is_file()
        ]

    def list_prefixes(self, prefix: str = "") -> list[str]:
        """Return the names of the sub-"directories" under *prefix*."""
        directory = self._path(prefix) if prefix else self.root
        if not directory.is_dir():
            return []
        return sorted(p.name for p in directory.iterdir() if p.is_dir())

    def read(self, key: str) -> bytes:
        """Return the object's bytes.

        Raises:
            FileNotFoundError: If no object exists under *key*.
        """
        return self._path(key).read_bytes()

    def download_url(self, ref: BlobRef) -> str:
        return f"{self.base_url}/blobs/{quote(ref.key)}"
