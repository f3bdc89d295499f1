"""Copy team logos into the overlay folder under content-hash names."""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Optional, Union

LOGGER = logging.getLogger("FlyScore.logo")

OVERLAY_SUBDIR = "overlay"
_CHUNK_SIZE = 64 * 1024
_MIME_EXTENSIONS = (
    ("png", "png"),
    ("jpeg", "jpg"),
    ("svg", "svg"),
    ("webp", "webp"),
)

PathLike = Union[str, Path]


def overlay_dir(resources_dir: PathLike) -> Path:
    return Path(resources_dir) / OVERLAY_SUBDIR


def normalized_extension(path: PathLike) -> str:
    """Lower-case extension, falling back to the MIME type and then ``png``."""
    ext = Path(path).suffix.lstrip(".").lower()
    if not ext or len(ext) > 5:
        mime, _encoding = mimetypes.guess_type(str(path))
        ext = ""
        for token, candidate in _MIME_EXTENSIONS:
            if mime and token in mime:
                ext = candidate
                break
    if ext == "jpeg":
        ext = "jpg"
    return ext or "png"


def short_file_hash(path: PathLike) -> str:
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError:
        return ""
    return digest.hexdigest()[:8]


def clean_logo_prefix(resources_dir: PathLike, prefix: str, keep: str = "") -> int:
    """Delete staged files whose name starts with ``prefix``, except ``keep``; returns the count."""
    folder = overlay_dir(resources_dir)
    if not prefix or not folder.is_dir():
        return 0
    removed = 0
    for candidate in folder.glob(f"{prefix}*.*"):
        if candidate.name == keep or not candidate.is_file():
            continue
        try:
            candidate.unlink()
            removed += 1
        except OSError as exc:
            LOGGER.warning("Failed removing staged logo %s: %s", candidate, exc)
    return removed


def stage_logo(resources_dir: PathLike, source: PathLike, base_name: str) -> Optional[str]:
    """Copy ``source`` into the overlay folder and return its relative name.

    Older files staged for ``base_name`` are removed only after the copy
    succeeded, so a bad source leaves the current logo in place. Returns
    ``None`` when the source cannot be read or copied.
    """
    if not source:
        return None
    source_path = Path(source)
    digest = short_file_hash(source_path)
    if not digest:
        LOGGER.warning("Cannot read logo %s", source_path)
        return None
    folder = overlay_dir(resources_dir)
    try:
        folder.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Failed to create overlay folder %s: %s", folder, exc)
        return None

    name = f"{base_name}-{digest}.{normalized_extension(source_path)}"
    target = folder / name
    try:
        if not (target.exists() and target.samefile(source_path)):
            shutil.copyfile(source_path, target)
    except OSError as exc:
        LOGGER.warning("Failed to copy logo to overlay: %s -> %s (%s)", source_path, target, exc)
        return None
    clean_logo_prefix(resources_dir, base_name, keep=name)
    LOGGER.debug("Staged logo %s as %s", source_path, name)
    return name


def _inside_overlay(resources_dir: PathLike, relative: str) -> Optional[Path]:
    folder = overlay_dir(resources_dir).resolve()
    target = (folder / relative).resolve()
    if folder not in target.parents:
        return None
    return target


def delete_logo(resources_dir: PathLike, relative: str) -> bool:
    trimmed = (relative or "").strip()
    if not trimmed:
        return False
    target = _inside_overlay(resources_dir, trimmed)
    if target is None:
        LOGGER.warning("Refusing to delete %r outside the overlay folder", trimmed)
        return False
    if not target.is_file():
        return False
    try:
        target.unlink()
    except OSError as exc:
        LOGGER.warning("Failed removing logo %s: %s", target, exc)
        return False
    return True
