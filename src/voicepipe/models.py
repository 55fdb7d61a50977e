# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Model download manager for voicepipe.

Fetches whisper.cpp ggml models from Hugging Face into models.directory.
Downloads resume from a <file>.download partial with an HTTP Range request
and are verified with SHA-256 before being moved into place.
"""

import hashlib
import os
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import requests

from .errors import DownloadError
from .utils import log

MODEL_BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"

CHUNK_SIZE = 1024 * 1024
CONNECT_TIMEOUT = 10
READ_TIMEOUT = 60

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


class ModelState(Enum):
    NOT_PRESENT = "not_present"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    size_mb: int                  # approximate, for progress display
    sha256: Optional[str] = None  # None = trust the server's digest

    @property
    def url(self) -> str:
        return f"{MODEL_BASE_URL}/ggml-{self.id}.bin"

    @property
    def filename(self) -> str:
        return f"ggml-{self.id}.bin"


CATALOG: Dict[str, CatalogEntry] = {
    entry.id: entry
    for entry in (
        CatalogEntry("tiny", 39),
        CatalogEntry("tiny.en", 39),
        CatalogEntry("base", 142),
        CatalogEntry("base.en", 142),
        CatalogEntry("small", 465),
        CatalogEntry("small.en", 465),
        CatalogEntry("medium", 1500),
        CatalogEntry("medium.en", 1500),
        CatalogEntry("large-v3", 3095),
    )
}


@dataclass
class ModelDescriptor:
    """Download state of one model (a copy; never shared with the worker)."""
    id: str
    local_path: Path
    total_size: int = 0
    bytes_fetched: int = 0
    checksum: Optional[str] = None
    state: ModelState = ModelState.NOT_PRESENT
    error: Optional[str] = None

    @property
    def progress(self) -> float:
        if self.total_size <= 0:
            return 0.0
        return min(1.0, self.bytes_fetched / self.total_size)


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


def _server_digest(response) -> Optional[str]:
    """SHA-256 advertised by Hugging Face for LFS files (X-Linked-ETag)."""
    for r in [response] + list(getattr(response, "history", []) or []):
        value = r.headers.get("X-Linked-ETag") or r.headers.get("X-Linked-Etag")
        if value:
            value = value.strip().strip('"').lower()
            if value.startswith("w/"):
                value = value[2:].strip('"')
            if _SHA256_RE.match(value):
                return value
    return None


def _total_size(response, offset: int) -> int:
    content_range = response.headers.get("Content-Range", "")
    if "/" in content_range:
        total = content_range.rsplit("/", 1)[1]
        if total.isdigit():
            return int(total)
    length = response.headers.get("Content-Length", "")
    if length.isdigit():
        return int(length) + offset
    return 0


class ModelManager:
    """Tracks and downloads models; one task per model id."""

    def __init__(
        self,
        directory: Path,
        max_concurrent: int = 2,
        session: Optional[requests.Session] = None,
        catalog: Optional[Dict[str, CatalogEntry]] = None,
    ):
        self.directory = Path(directory).expanduser()
        self._catalog = catalog if catalog is not None else CATALOG
        self._session = session or requests.Session()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_concurrent), thread_name_prefix="download"
        )
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._descriptors: Dict[str, ModelDescriptor] = {}
        self._futures: Dict[str, Future] = {}
        self._stop = threading.Event()

    def path_for(self, model_id: str) -> Path:
        entry = self._entry(model_id)
        return self.directory / entry.filename

    def descriptor(self, model_id: str) -> ModelDescriptor:
        """Current state of a model, refreshed from disk when idle."""
        with self._guard:
            current = self._descriptors.get(model_id)
            if current and current.state in (ModelState.DOWNLOADING, ModelState.VERIFYING):
                return replace(current)
            failed = current if current and current.state is ModelState.FAILED else None

        desc = self._scan(model_id)
        if failed and desc.state is not ModelState.READY:
            desc.state = ModelState.FAILED
            desc.error = failed.error
        with self._guard:
            latest = self._descriptors.get(model_id)
            if latest and latest.state in (ModelState.DOWNLOADING, ModelState.VERIFYING):
                return replace(latest)
            self._descriptors[model_id] = desc
        return replace(desc)

    def is_ready(self, model_id: str) -> bool:
        if model_id not in self._catalog:
            return False
        return self.descriptor(model_id).state is ModelState.READY

    def ensure(self, model_id: str) -> Optional[Future]:
        """Start a download unless the model is already READY."""
        if self.is_ready(model_id):
            return None
        return self.download(model_id)

    def download(self, model_id: str) -> Future:
        """Submit a download (or return the one already in flight)."""
        self._entry(model_id)
        with self._guard:
            running = self._futures.get(model_id)
            if running is not None and not running.done():
                return running
            future = self._executor.submit(self._download, model_id)
            self._futures[model_id] = future
            return future

    def close(self):
        """Stop downloads in flight; their partial files are kept for resuming."""
        self._stop.set()
        self._executor.shutdown(wait=False, cancel_futures=True)
        try:
            self._session.close()
        except Exception:
            pass

    # ─────────────────────────────────────────────────────────────────
    # Private methods
    # ─────────────────────────────────────────────────────────────────

    def _entry(self, model_id: str) -> CatalogEntry:
        entry = self._catalog.get(model_id)
        if entry is None:
            available = ", ".join(self._catalog.keys())
            raise ValueError(f"Unknown model: {model_id}. Available: {available}")
        return entry

    def _lock_for(self, model_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(model_id, threading.Lock())

    def _partial_path(self, path: Path) -> Path:
        return path.with_name(path.name + ".download")

    def _sidecar_path(self, path: Path) -> Path:
        return path.with_name(path.name + ".sha256")

    def _scan(self, model_id: str) -> ModelDescriptor:
        entry = self._entry(model_id)
        path = self.directory / entry.filename
        desc = ModelDescriptor(id=model_id, local_path=path, checksum=entry.sha256)

        if path.exists():
            recorded = None
            sidecar = self._sidecar_path(path)
            if sidecar.exists():
                recorded = sidecar.read_text(encoding="utf-8").strip() or None
            size = path.stat().st_size
            desc.total_size = desc.bytes_fetched = size
            if entry.sha256 is None or recorded == entry.sha256:
                desc.state = ModelState.READY
                desc.checksum = recorded or entry.sha256
                return desc

        partial = self._partial_path(path)
        if partial.exists():
            desc.bytes_fetched = partial.stat().st_size
        return desc

    def _update(self, model_id: str, **changes):
        with self._guard:
            desc = self._descriptors[model_id]
            for key, value in changes.items():
                setattr(desc, key, value)

    def _fail(self, model_id: str, message: str) -> DownloadError:
        log(f"Model {model_id}: {message}", "ERR")
        self._update(model_id, state=ModelState.FAILED, error=message)
        return DownloadError(message)

    def _download(self, model_id: str) -> Path:
        entry = self._entry(model_id)
        with self._lock_for(model_id):
            path = self.directory / entry.filename
            partial = self._partial_path(path)
            self.directory.mkdir(parents=True, exist_ok=True)

            offset = partial.stat().st_size if partial.exists() else 0
            with self._guard:
                self._descriptors[model_id] = ModelDescriptor(
                    id=model_id,
                    local_path=path,
                    total_size=entry.size_mb * 1_000_000,
                    bytes_fetched=offset,
                    checksum=entry.sha256,
                    state=ModelState.DOWNLOADING,
                )

            headers = {"Range": f"bytes={offset}-"} if offset else {}
            if offset:
                log(f"Resuming {entry.filename} at {offset / 1e6:.1f} MB", "INFO")
            else:
                log(f"Downloading {entry.filename} (~{entry.size_mb} MB)", "INFO")

            try:
                expected, total = self._fetch(model_id, entry, partial, offset, headers)
            except DownloadError as e:
                raise self._fail(model_id, str(e)) from e
            except requests.RequestException as e:
                raise self._fail(model_id, f"Download failed: {e}") from e
            except OSError as e:
                raise self._fail(model_id, f"Cannot write {partial}: {e}") from e

            self._update(model_id, state=ModelState.VERIFYING)
            try:
                digest, size = self._verify(partial, expected, total)
                os.replace(partial, path)
                self._sidecar_path(path).write_text(digest + "\n", encoding="utf-8")
            except DownloadError as e:
                raise self._fail(model_id, str(e)) from e
            except OSError as e:
                raise self._fail(model_id, f"Cannot finish {entry.filename}: {e}") from e
            self._update(
                model_id,
                state=ModelState.READY,
                checksum=digest,
                total_size=size,
                bytes_fetched=size,
                error=None,
            )
            log(f"Model {model_id} ready", "OK")
            return path

    def _fetch(self, model_id: str, entry: CatalogEntry, partial: Path, offset: int, headers: dict):
        """Stream the model into the partial file; returns (expected digest, total size)."""
        with self._session.get(
            entry.url,
            headers=headers,
            stream=True,
            timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
        ) as r:
            if r.status_code == 416 and offset:
                # Partial already holds the whole file
                return entry.sha256 or _server_digest(r), offset
            r.raise_for_status()

            if r.status_code == 206:
                mode, fetched = "ab", offset
            else:
                if offset:
                    log(f"Server ignored range request, restarting {entry.filename}", "WARN")
                mode, fetched = "wb", 0

            total = _total_size(r, fetched)
            if total:
                self._update(model_id, total_size=total)
            self._update(model_id, bytes_fetched=fetched)

            with open(partial, mode) as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    if self._stop.is_set():
                        raise DownloadError("Cancelled")
                    if not chunk:
                        continue
                    f.write(chunk)
                    fetched += len(chunk)
                    self._update(model_id, bytes_fetched=fetched)

            return entry.sha256 or _server_digest(r), total

    def _verify(self, partial: Path, expected: Optional[str], total: int):
        """Check the partial against its digest (or size); deletes it on mismatch."""
        digest = sha256_file(partial)
        size = partial.stat().st_size
        if expected and digest != expected:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Checksum mismatch (expected {expected[:12]}, got {digest[:12]})")
        if not expected and total and size != total:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Size mismatch ({size} of {total} bytes)")
        return digest, size
