"""Local filesystem blob storage for raw inbound emails."""

import asyncio
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_key_part(value: str) -> str:
    """Make *value* usable as a single path segment."""
    cleaned = _UNSAFE_CHARS.sub("_", value).strip("._")
    return cleaned[:200] or "blob"


class BlobStorage:
    """Stores opaque byte blobs under a root directory, addressed by relative key."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Blob key escapes storage root: {key}")
        return path

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)

    async def put(self, key: str, data: bytes) -> str:
        await asyncio.to_thread(self._write, key, data)
        logger.debug("Stored blob %s (%d bytes)", key, len(data))
        return key

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._path(key).read_bytes)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).exists)
