"""
Object storage for uploaded audio.

``ObjectStorage`` is the seam; ``LocalObjectStorage`` writes under a base
directory and returns either a public URL (when a public base URL is
configured) or a ``file://`` URI.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class StoredObject:
    key: str
    url: str


class ObjectStorage(Protocol):
    async def put(self, key: str, data: bytes, mime_type: str) -> StoredObject:
        ...


class LocalObjectStorage:
    def __init__(self, base_dir: str, public_base_url: Optional[str] = None):
        self._base_dir = Path(base_dir).resolve()
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def _path_for(self, key: str) -> Path:
        path = (self._base_dir / key.lstrip("/")).resolve()
        if self._base_dir not in path.parents:
            raise ValueError(f"Object key escapes storage root: {key}")
        return path

    async def put(self, key: str, data: bytes, mime_type: str) -> StoredObject:
        path = self._path_for(key)

        def _write_sync():
            os.makedirs(path.parent, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, _write_sync)
        url = f"{self._public_base_url}/{key}" if self._public_base_url else path.as_uri()
        logger.debug("Object stored", key=key, bytes=len(data), mime_type=mime_type)
        return StoredObject(key=key, url=url)
