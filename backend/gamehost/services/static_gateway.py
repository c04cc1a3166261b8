from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path

from gamehost.core.errors import NotFound
from gamehost.services.unpack_cache import ENTRY_FILE, MARKER_NAME


# Types common in WebGL/Unity/Emscripten builds that the platform table may lack.
mimetypes.add_type("application/wasm", ".wasm")
mimetypes.add_type("application/octet-stream", ".data")
mimetypes.add_type("application/octet-stream", ".mem")
mimetypes.add_type("application/vnd.unity", ".unity3d")
mimetypes.add_type("text/javascript", ".js")
mimetypes.add_type("application/json", ".json")

_DEFAULT_MIME = "application/octet-stream"


@dataclass(frozen=True)
class StaticFile:
    path: Path
    media_type: str
    content_encoding: str | None = None

    @property
    def headers(self) -> dict[str, str]:
        return {"Content-Encoding": self.content_encoding} if self.content_encoding else {}


def guess_media_type(name: str) -> tuple[str, str | None]:
    """Content type and encoding for a served file name.

    ``*.gz`` files are served with ``Content-Encoding: gzip`` and the type of
    the name without the suffix, so ``build.wasm.gz`` is ``application/wasm``.
    """

    encoding = None
    base = name
    if name.lower().endswith(".gz"):
        encoding = "gzip"
        base = name[: -len(".gz")]
    media_type, _ = mimetypes.guess_type(base, strict=False)
    return media_type or _DEFAULT_MIME, encoding


def resolve_static_file(root: Path, relative_path: str | None = None) -> StaticFile:
    rel = str(relative_path or "").replace("\\", "/").strip("/")
    if not rel:
        rel = ENTRY_FILE

    base = Path(root).resolve()
    candidate = (base / rel).resolve()
    if not candidate.is_relative_to(base) or candidate == base:
        raise NotFound("file not found")
    if candidate.name == MARKER_NAME or not candidate.is_file():
        raise NotFound("file not found")

    media_type, encoding = guess_media_type(candidate.name)
    return StaticFile(path=candidate, media_type=media_type, content_encoding=encoding)
