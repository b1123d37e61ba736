from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Sequence

from ..errors import ProvisionError

if TYPE_CHECKING:
    from ..system import System

logger = logging.getLogger(__name__)

_SKIP_NAMES = {"__pycache__"}


def tree_files(src: str) -> Iterator[Path]:
    """Relative paths of the files copy_tree stages from src, in sorted order."""

    s = Path(src)
    for item in sorted(s.rglob("*")):
        rel = item.relative_to(s)
        if _SKIP_NAMES.intersection(rel.parts) or item.suffix == ".pyc" or item.is_dir():
            continue
        yield rel


def copy_tree(src: str, dst: str, *, dry_run: bool = False) -> None:
    s = Path(src)
    d = Path(dst)
    if not s.exists():
        raise FileNotFoundError(src)

    if dry_run:
        logger.info("Would copy tree %s -> %s", str(s), str(d))
        return

    for rel in tree_files(src):
        out = d / rel
        out.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(s / rel, out)
    logger.info("Copied tree %s -> %s", str(s), str(d))


def file_matches(system: "System", path: str, content: str) -> bool:
    return system.read_text(path) == content


def install_checked_file(
    system: "System",
    path: str,
    content: str,
    *,
    mode: int,
    validate: Sequence[str],
) -> None:
    """Write a file, then validate it in place; remove it if validation fails.

    Used for fragments that break the system when malformed (sudoers).
    """

    system.write_file(path, content, mode=mode)
    r = system.run(validate, check=False)
    if not r.ok:
        system.remove_file(path)
        raise ProvisionError(f"Validation failed for {path}; file removed")
    logger.info("Validated %s", path)
