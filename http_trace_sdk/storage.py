"""
Storage for finished debug requests.

``MemoryStorage`` keeps a bounded ring buffer in process; ``JsonlStorage``
appends one JSON document per line so payloads survive restarts and can be
inspected with the CLI.
"""

from __future__ import annotations

import json
import threading
from collections import deque
from pathlib import Path
from typing import Deque, Dict, List, Optional, Union

from pydantic import ValidationError

from http_trace_sdk.common.config import StorageConfig
from http_trace_sdk.common.errors import ConfigurationError, RequestNotFoundError, StorageError
from http_trace_sdk.common.logger import get_logger
from http_trace_sdk.request import DebugRequest

logger = get_logger(__name__)


class Storage:
    """Interface shared by storage drivers."""

    def store(self, request: DebugRequest) -> None:
        raise NotImplementedError

    def find(self, request_id: str) -> DebugRequest:
        """
        Load a stored request.

        Raises:
            RequestNotFoundError: If no request has this id.
        """
        raise NotImplementedError

    def latest(self) -> Optional[DebugRequest]:
        raise NotImplementedError

    def all(self) -> List[DebugRequest]:
        raise NotImplementedError

    def clean(self) -> None:
        raise NotImplementedError


class MemoryStorage(Storage):
    """Thread-safe in-memory ring buffer of debug requests."""

    def __init__(self, max_requests: Optional[int] = 200) -> None:
        self.max_requests = max(1, int(max_requests)) if max_requests is not None else None
        self._entries: Deque[DebugRequest] = deque()
        self._by_id: Dict[str, DebugRequest] = {}
        self._lock = threading.Lock()

    def store(self, request: DebugRequest) -> None:
        with self._lock:
            if request.id in self._by_id:
                self._entries = deque(e for e in self._entries if e.id != request.id)
            self._entries.append(request)
            self._by_id[request.id] = request
            while self.max_requests is not None and len(self._entries) > self.max_requests:
                old = self._entries.popleft()
                self._by_id.pop(old.id, None)

    def find(self, request_id: str) -> DebugRequest:
        with self._lock:
            request = self._by_id.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def latest(self) -> Optional[DebugRequest]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def all(self) -> List[DebugRequest]:
        with self._lock:
            return list(self._entries)

    def clean(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_id.clear()


class JsonlStorage(Storage):
    """
    Append-only JSON Lines storage.

    Storing a request id again appends a newer version; reads return the last
    version. When ``max_requests`` is set, the file is compacted to the newest
    requests once it holds more than that.
    """

    def __init__(self, path: Union[str, Path], max_requests: Optional[int] = None) -> None:
        self.path = Path(path)
        self.max_requests = max_requests
        self._lock = threading.Lock()
        self._count: Optional[int] = None

    def store(self, request: DebugRequest) -> None:
        line = json.dumps(request.to_dict(), ensure_ascii=False)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                raise StorageError(f"Failed to write {self.path}: {e}") from e

            if self.max_requests is not None:
                if self._count is None:
                    self._count = len(self._read_unlocked())
                else:
                    self._count += 1
                if self._count > self.max_requests:
                    self._compact_unlocked()

    def find(self, request_id: str) -> DebugRequest:
        for request in reversed(self._read()):
            if request.id == request_id:
                return request
        raise RequestNotFoundError(request_id)

    def latest(self) -> Optional[DebugRequest]:
        requests = self._read()
        return requests[-1] if requests else None

    def all(self) -> List[DebugRequest]:
        latest: Dict[str, DebugRequest] = {}
        for request in self._read():
            latest.pop(request.id, None)
            latest[request.id] = request
        return list(latest.values())

    def clean(self) -> None:
        with self._lock:
            if self.path.exists():
                self.path.unlink()
            self._count = 0

    def _read(self) -> List[DebugRequest]:
        with self._lock:
            return self._read_unlocked()

    def _read_unlocked(self) -> List[DebugRequest]:
        if not self.path.exists():
            return []

        requests: List[DebugRequest] = []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        requests.append(DebugRequest.from_dict(json.loads(line)))
                    except (ValueError, ValidationError) as e:
                        logger.warning(f"Skipping corrupt entry at {self.path}:{line_no}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e
        return requests

    def _compact_unlocked(self) -> None:
        latest: Dict[str, DebugRequest] = {}
        for request in self._read_unlocked():
            latest.pop(request.id, None)
            latest[request.id] = request
        kept = list(latest.values())[-self.max_requests:]

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                for request in kept:
                    f.write(json.dumps(request.to_dict(), ensure_ascii=False) + "\n")
            tmp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Failed to compact {self.path}: {e}") from e
        self._count = len(kept)
        logger.debug(f"Compacted {self.path} to {len(kept)} requests")


def create_storage(config: Optional[StorageConfig] = None) -> Storage:
    """
    Build the storage driver described by ``config``.

    Raises:
        ConfigurationError: If the driver is unknown.
    """
    config = config or StorageConfig()
    if config.driver == "memory":
        return MemoryStorage(max_requests=config.max_requests)
    if config.driver == "jsonl":
        return JsonlStorage(config.path, max_requests=config.max_requests)
    raise ConfigurationError(f"Unknown storage driver: {config.driver}")
