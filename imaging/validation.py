"""Input validation for files chosen for import."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Union
from urllib.parse import urlparse

IMPORT_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".tif", ".tiff"})


def _has_url_scheme(path_str: str) -> bool:
    """Return True if *path_str* looks like a URL with a scheme.

    Single-letter schemes such as ``"C"`` are treated as drive letters on
    Windows and therefore ignored.
    """
    parsed = urlparse(path_str)
    return bool(parsed.scheme and len(parsed.scheme) > 1)


def validate_image_path(
    path: Union[str, Path], allowed_exts: Iterable[str] = IMPORT_EXTENSIONS
) -> Path:
    """Validate a user-supplied image *path*.

    The path must point to an existing file with an allowed extension and must
    not include a URL scheme.  Returns the resolved ``Path`` object.
    """
    path_str = str(path)
    if _has_url_scheme(path_str):
        raise ValueError("URLs are not allowed")

    p = Path(path_str).expanduser()
    try:
        p = p.resolve(strict=True)
    except FileNotFoundError as exc:
        raise ValueError(f"File does not exist: {path_str}") from exc

    if not p.is_file():
        raise ValueError(f"Not a file: {path_str}")

    if p.suffix.lower() not in {ext.lower() for ext in allowed_exts}:
        raise ValueError(f"Unsupported file extension: {p.suffix}")

    return p


def collect_image_files(
    paths: Iterable[Union[str, Path]], allowed_exts: Iterable[str] = IMPORT_EXTENSIONS
) -> List[Path]:
    """Expand folders and validate files for a stitch import.

    Folders contribute their direct children with an allowed extension,
    in name order.  Invalid explicit paths are logged and skipped; duplicates
    are dropped.
    """
    allowed = {ext.lower() for ext in allowed_exts}
    collected: List[Path] = []
    seen: set[Path] = set()
    for raw in paths:
        candidate = Path(str(raw)).expanduser()
        if not _has_url_scheme(str(raw)) and candidate.is_dir():
            members = sorted(
                child for child in candidate.iterdir()
                if child.is_file() and child.suffix.lower() in allowed
            )
        else:
            members = [candidate]
        for member in members:
            try:
                resolved = validate_image_path(member, allowed)
            except ValueError as exc:
                logging.warning("Skipping %s: %s", member, exc)
                continue
            if resolved not in seen:
                seen.add(resolved)
                collected.append(resolved)
    return collected


__all__ = ["IMPORT_EXTENSIONS", "collect_image_files", "validate_image_path"]
