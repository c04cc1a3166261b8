from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import time
import uuid
import zipfile
import zlib
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from gamehost.core.config import settings
from gamehost.core.errors import AssetMissing, ExtractionFailed, StorageFailure, ValidationFailed
from gamehost.core.redis_client import acquire_lock, release_lock
from gamehost.models.game_asset import AssetType, GameAsset
from gamehost.services.blob_store import BlobStore


log = logging.getLogger(__name__)

MARKER_NAME = ".extracted.json"
ENTRY_FILE = "index.html"

_COPY_CHUNK = 1024 * 1024


def extraction_root(base: Path, game_id: int, asset_id: int) -> Path:
    return Path(base) / "games" / str(int(game_id)) / "assets" / str(int(asset_id))


def is_extracted(root: Path) -> bool:
    return (Path(root) / MARKER_NAME).is_file()


def _safe_member_path(name: str) -> PurePosixPath | None:
    """Return the normalised relative path of an archive entry, or ``None`` for
    directory entries. Raises for anything that would land outside the root."""

    raw = str(name or "").replace("\\", "/")
    if raw.endswith("/"):
        return None
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise ExtractionFailed(f"archive entry '{name}' has an absolute path")
    parts = [p for p in raw.split("/") if p not in {"", "."}]
    if not parts:
        return None
    if any(p == ".." for p in parts):
        raise ExtractionFailed(f"archive entry '{name}' escapes the extraction root")
    return PurePosixPath(*parts)


class UnpackCache:
    """Lazily extracts main game archives into ``{root}/games/{gid}/assets/{aid}``.

    A bundle counts as extracted only once its marker file exists. The marker
    is written into a temporary sibling directory together with the extracted
    files and the whole directory is renamed into place, so readers never see a
    half-written tree. A Redis lock per ``(game_id, asset_id)`` keeps
    concurrent first requests from extracting twice.
    """

    def __init__(
        self,
        store: BlobStore,
        *,
        base_path: Path | None = None,
        max_entries: int | None = None,
        max_total_bytes: int | None = None,
        timeout_seconds: float | None = None,
        lock_ttl_seconds: int | None = None,
        lock_wait_seconds: float | None = None,
    ):
        self.store = store
        self.base_path = Path(base_path or settings.resolved_extract_root)
        self.max_entries = int(max_entries or settings.extraction_max_entries)
        self.max_total_bytes = int(max_total_bytes or settings.extraction_max_total_bytes)
        self.timeout_seconds = float(timeout_seconds or settings.extraction_timeout_seconds)
        self.lock_ttl_seconds = int(lock_ttl_seconds or settings.extraction_lock_ttl_seconds)
        self.lock_wait_seconds = float(
            settings.extraction_lock_wait_seconds if lock_wait_seconds is None else lock_wait_seconds
        )

    def root_for(self, game_id: int, asset_id: int) -> Path:
        return extraction_root(self.base_path, game_id, asset_id)

    def prepare(self, asset: GameAsset) -> Path:
        if asset.asset_type != AssetType.main_game:
            raise ValidationFailed("only main_game assets can be prepared for play")

        root = self.root_for(asset.game_id, asset.id)
        if is_extracted(root):
            log.debug("unpack cache hit: game_id=%s asset_id=%s", asset.game_id, asset.id)
            return root

        lock_key = f"locks:extract:{int(asset.game_id)}:{int(asset.id)}"
        token = acquire_lock(lock_key, ttl_seconds=self.lock_ttl_seconds, wait_seconds=self.lock_wait_seconds)
        if token is None:
            raise ExtractionFailed("timed out waiting for another extraction of this asset")
        try:
            if is_extracted(root):
                return root
            self._extract(asset, root)
        finally:
            release_lock(lock_key, token)
        return root

    def _extract(self, asset: GameAsset, root: Path) -> None:
        if not self.store.exists(asset.file_path):
            raise AssetMissing("Game asset file missing")

        root.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{root.name}.tmp-", dir=root.parent))
        t0 = time.monotonic()
        try:
            with self.store.local_copy(asset.file_path) as archive_path:
                try:
                    zf = zipfile.ZipFile(archive_path, "r")
                except (zipfile.BadZipFile, OSError) as e:
                    raise ExtractionFailed("Failed to extract game asset") from e
                try:
                    entries, total = self._extract_members(zf, staging, t0)
                finally:
                    zf.close()

            (staging / MARKER_NAME).write_text(
                json.dumps(
                    {
                        "game_id": int(asset.game_id),
                        "asset_id": int(asset.id),
                        "checksum": asset.checksum,
                        "entries": entries,
                        "total_bytes": total,
                        "extracted_at": datetime.now(timezone.utc).isoformat(),
                    },
                    ensure_ascii=False,
                ),
                encoding="utf-8",
            )
            self._commit(staging, root)
            staging = None
        except OSError as e:
            log.exception("extraction i/o failed: game_id=%s asset_id=%s", asset.game_id, asset.id)
            raise StorageFailure(f"failed to write extracted bundle: {e}") from e
        finally:
            if staging is not None:
                shutil.rmtree(staging, ignore_errors=True)

        log.info(
            "asset extracted: game_id=%s asset_id=%s entries=%s bytes=%s duration_ms=%s",
            asset.game_id,
            asset.id,
            entries,
            total,
            int((time.monotonic() - t0) * 1000),
        )

    def _extract_members(self, zf: zipfile.ZipFile, staging: Path, t0: float) -> tuple[int, int]:
        try:
            infos = zf.infolist()
        except (zipfile.BadZipFile, OSError) as e:
            raise ExtractionFailed("Failed to extract game asset") from e

        if len(infos) > self.max_entries:
            raise ExtractionFailed(f"archive has too many entries ({len(infos)} > {self.max_entries})")
        declared = sum(int(i.file_size or 0) for i in infos)
        if declared > self.max_total_bytes:
            raise ExtractionFailed("archive expands beyond the allowed size")

        entries = 0
        total = 0
        for info in infos:
            rel = _safe_member_path(info.filename)
            if rel is None:
                continue
            if time.monotonic() - t0 > self.timeout_seconds:
                raise ExtractionFailed("archive extraction timed out")

            dest = staging.joinpath(*rel.parts)
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                out = dest.open("wb")
            except (FileExistsError, NotADirectoryError, IsADirectoryError) as e:
                # A file and a directory share a name inside the archive.
                raise ExtractionFailed(f"archive entry conflicts with another entry: {info.filename}") from e
            try:
                with out, zf.open(info, "r") as src:
                    while True:
                        chunk = src.read(_COPY_CHUNK)
                        if not chunk:
                            break
                        total += len(chunk)
                        if total > self.max_total_bytes:
                            raise ExtractionFailed("archive expands beyond the allowed size")
                        out.write(chunk)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError) as e:
                raise ExtractionFailed("Failed to extract game asset") from e
            entries += 1
        return entries, total

    def _commit(self, staging: Path, root: Path) -> None:
        stale = None
        if root.exists():
            # Partial tree from an interrupted extraction; move it out of the way first.
            stale = root.with_name(f".{root.name}.stale-{uuid.uuid4().hex[:8]}")
            os.replace(root, stale)
        os.replace(staging, root)
        if stale is not None:
            shutil.rmtree(stale, ignore_errors=True)


def build_test_url(game_id: int, asset_id: int, path: str = ENTRY_FILE) -> str:
    base = str(settings.public_base_url or "").rstrip("/")
    return f"{base}/game-test/{int(game_id)}/{int(asset_id)}/{path}"


def build_play_url(game_id: int, asset_id: int, path: str = ENTRY_FILE) -> str:
    base = str(settings.public_base_url or "").rstrip("/")
    return f"{base}/game-play/{int(game_id)}/{int(asset_id)}/{path}"
