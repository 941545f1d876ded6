# app/tools/boilerplate.py
"""
Starter project templates for create_boilerplate.

Templates live under Backend/templates/<type>/ and are copied file by file,
keeping their relative paths.
"""
from pathlib import Path
from typing import List, Tuple

import aiofiles

from app.core.exceptions import DispatchError


TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

BOILERPLATE_TYPES = ("react-vite",)


def template_files(kind: str) -> List[Path]:
    root = TEMPLATES_DIR / kind
    return sorted(p for p in root.rglob("*") if p.is_file())


async def load_boilerplate(kind: str) -> List[Tuple[str, str]]:
    """Return (relative_path, content) pairs for a boilerplate type."""
    if kind not in BOILERPLATE_TYPES:
        raise DispatchError(
            "create_boilerplate",
            f"Unknown boilerplate type '{kind}'. Available: {', '.join(BOILERPLATE_TYPES)}",
        )

    root = TEMPLATES_DIR / kind
    files: List[Tuple[str, str]] = []
    for path in template_files(kind):
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            content = await f.read()
        files.append((path.relative_to(root).as_posix(), content))

    if not files:
        raise DispatchError("create_boilerplate", f"Template '{kind}' is empty")
    return files
