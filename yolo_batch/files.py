from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


def scan_images(directory: PathLike) -> List[Path]:
    """Top-level .png/.jpg/.jpeg files of `directory`, sorted by name."""
    d = Path(directory)
    if not d.is_dir():
        raise FileNotFoundError(f"Image directory not found: {d}")
    return sorted(p for p in d.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES)


def dated_output_dir(root: PathLike, when: Optional[datetime] = None) -> Path:
    when = when or datetime.now()
    out = Path(root) / when.strftime("%Y%m%d")
    out.mkdir(parents=True, exist_ok=True)
    return out


def output_path_for(image_path: PathLike, out_dir: PathLike) -> Path:
    return Path(out_dir) / f"{Path(image_path).stem}_output.png"
