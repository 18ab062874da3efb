"""
Local filesystem storage for visit note attachments.

Defaults:
- STORAGE_ROOT: ./data/storage

Inline SIGNATURE/PHOTO payloads (raw base64 or data: URLs) are written under
<root>/uploads/<kind>/ and replaced by a file reference dict. Payloads are
decoded and planned first; bytes hit the disk only once the note row is in.
"""
from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from .config import get_settings
from .ids import new_ulid

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?);base64,(?P<body>.*)$", re.DOTALL)

_EXT_BY_MIME = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


def _repo_root() -> Path:
    # apps/api/carebase/core/storage.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def get_storage_root() -> Path:
    p = Path(get_settings().storage_root)
    return (_repo_root() / p).resolve() if not p.is_absolute() else p


def ensure_storage_root() -> Path:
    root = get_storage_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _sniff_mime(raw: bytes) -> str:
    if raw.startswith(b"\x89PNG"):
        return "image/png"
    if raw.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if raw.startswith(b"GIF8"):
        return "image/gif"
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def decode_inline(payload: str) -> Optional[Tuple[bytes, str]]:
    """Return (bytes, mime) for a data: URL or bare base64 string, None if it is neither."""
    text = payload.strip()
    m = _DATA_URL_RE.match(text)
    if m:
        body = m.group("body")
        mime = m.group("mime") or ""
    elif text.startswith("data:"):
        return None
    else:
        body = text
        mime = ""
    try:
        raw = base64.b64decode(re.sub(r"\s+", "", body), validate=True)
    except (binascii.Error, ValueError):
        return None
    if not raw:
        return None
    return raw, (mime or _sniff_mime(raw))


@dataclass(frozen=True)
class PendingUpload:
    """A decoded inline payload and the reference it will be stored under."""

    rel_path: Path
    raw: bytes
    mime: str

    @property
    def ref(self) -> Dict[str, Any]:
        return {
            "file_url": "storage://" + self.rel_path.as_posix(),
            "file_name": self.rel_path.name,
            "file_type": self.mime,
            "file_size": len(self.raw),
        }


def plan_inline_upload(kind: str, payload: str) -> PendingUpload:
    """Decode an inline upload and pick its path. Nothing touches the disk yet."""
    decoded = decode_inline(payload)
    if decoded is None:
        raise ValueError("payload is not base64 or a data: URL")
    raw, mime = decoded
    ext = _EXT_BY_MIME.get(mime, "bin")
    return PendingUpload(Path("uploads") / kind.lower() / f"{new_ulid()}.{ext}", raw, mime)


def write_uploads(pending: Iterable[PendingUpload]) -> None:
    root = ensure_storage_root()
    for p in pending:
        dest = root / p.rel_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(p.raw)


def discard_uploads(pending: Iterable[PendingUpload]) -> None:
    root = get_storage_root()
    for p in pending:
        (root / p.rel_path).unlink(missing_ok=True)


def storage_health() -> Dict[str, Any]:
    try:
        root = ensure_storage_root()
        marker = root / ".write_check"
        marker.write_text("ok", encoding="utf-8")
        try:
            marker.unlink()
        except Exception:
            pass
        return {"status": "ok", "kind": "local_fs", "root": str(root.as_posix())}
    except Exception as e:
        return {"status": "error", "kind": "local_fs", "root": str(get_storage_root().as_posix()), "error": str(e)}
