"""
File Storage Module

External storage collaborator for binary uploads such as account avatars.
The core hands over bytes and keeps only the returned URL.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Union
import threading

from .logging_config import get_logger


class FileStorage(ABC):
    """Abstract interface for file storage backends"""

    @abstractmethod
    def store(self, data: bytes, filename: str) -> str:
        """Store bytes under a file name and return the public URL"""
        pass

    @abstractmethod
    def delete(self, url: str) -> bool:
        """Remove a stored file by URL; False when nothing was there"""
        pass


class InMemoryFileStorage(FileStorage):
    """In-memory file storage implementation for testing"""

    def __init__(self, url_prefix: str = "/assets/avatars"):
        self.url_prefix = url_prefix.rstrip("/")
        self.files: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def store(self, data: bytes, filename: str) -> str:
        url = f"{self.url_prefix}/{filename}"
        with self._lock:
            self.files[url] = bytes(data)
        return url

    def delete(self, url: str) -> bool:
        with self._lock:
            return self.files.pop(url, None) is not None

    def get(self, url: str) -> Optional[bytes]:
        with self._lock:
            return self.files.get(url)


class LocalFileStorage(FileStorage):
    """
    Files on the local disk, served by the web tier under ``url_prefix``
    """

    def __init__(self, base_dir: Union[str, Path], url_prefix: str = "/assets/avatars"):
        self.base_dir = Path(base_dir)
        self.url_prefix = url_prefix.rstrip("/")
        self.logger = get_logger("nivalus.file_storage")

    def _path_for(self, filename: str) -> Path:
        name = Path(filename).name
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid file name: {filename!r}")
        return self.base_dir / name

    def store(self, data: bytes, filename: str) -> str:
        path = self._path_for(filename)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        self.logger.info("File stored", extra={"resource": str(path), "extra": {"bytes": len(data)}})
        return f"{self.url_prefix}/{path.name}"

    def delete(self, url: str) -> bool:
        if not url.startswith(self.url_prefix + "/"):
            return False
        path = self._path_for(url[len(self.url_prefix) + 1:])
        if not path.exists():
            return False
        path.unlink()
        self.logger.info("File deleted", extra={"resource": str(path)})
        return True
