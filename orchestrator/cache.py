"""Content-addressed, file-backed cache for generated blobs."""
import errno
import hashlib
import json
import os
import shutil
import uuid
from typing import Any, Callable


def _ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _hash_payload(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _normalize_ext(ext: str) -> str:
    if not ext:
        return ""
    return ext if ext.startswith(".") else f".{ext}"


def _file_exists(path: str) -> bool:
    try:
        return os.path.isfile(path) and os.path.getsize(path) > 0
    except FileNotFoundError:
        return False


class DiskCache:
    """At-most-once creation per key; concurrent writers may race safely.

    Entries are written to a unique temp file and hard-linked into place, so a
    reader never observes a partial file.
    """

    def __init__(self, cache_dir: str) -> None:
        self.dir = cache_dir

    def make_key(self, payload: Any) -> str:
        return _hash_payload(payload)

    def resolve_path(self, key: str, ext: str) -> str:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return os.path.join(self.dir, f"{digest}{_normalize_ext(ext)}")

    def get_or_create(self, key: str, ext: str, create: Callable[[], bytes]) -> str:
        _ensure_dir(self.dir)
        target = self.resolve_path(key, ext)
        if _file_exists(target):
            return target

        tmp_path = os.path.join(self.dir, f"{uuid.uuid4().hex}.tmp")
        try:
            data = create()
            with open(tmp_path, "wb") as f:
                f.write(data)
            try:
                os.link(tmp_path, target)
            except FileExistsError:
                # Another writer got there first; its file is complete.
                return target
            return target
        finally:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass


def link_or_copy(src: str, dst: str) -> str:
    """Hard-link ``src`` to ``dst``, copying when the link crosses devices."""
    _ensure_dir(os.path.dirname(dst) or ".")
    if os.path.exists(dst):
        return dst
    try:
        os.link(src, dst)
    except FileExistsError:
        return dst
    except OSError as exc:
        if exc.errno not in (errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP):
            raise
        shutil.copyfile(src, dst)
    return dst
