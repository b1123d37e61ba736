from __future__ import annotations

import logging
import posixpath
from typing import Optional, Sequence

from ..errors import CommandError, ProvisionError
from ..system import System

logger = logging.getLogger(__name__)


def find_target_root(system: System, candidates: Sequence[str], marker: str) -> Optional[str]:
    """Return the first candidate holding the marker directory."""

    for mp in candidates:
        if system.is_dir(posixpath.join(mp, marker)):
            logger.info("Target root found at %s", mp)
            return mp
        logger.info("No %s/ under %s", marker, mp)
    return None


def discover_target_root(
    system: System,
    *,
    candidates: Sequence[str],
    marker: str,
    fallback_device: Optional[str],
    fallback_mountpoint: str,
) -> str:
    """Locate the freshly installed root filesystem.

    archinstall leaves the new system mounted at /mnt or /mnt/archinstall
    depending on version. When neither holds the marker, mount the fallback
    device explicitly and look again.
    """

    found = find_target_root(system, candidates, marker)
    if found:
        return found

    if not fallback_device:
        raise ProvisionError(
            "Mount point not found and no fallback device configured; "
            "copy the handoff bundle to the new system manually"
        )

    logger.warning("Mount point not found; mounting %s on %s", fallback_device, fallback_mountpoint)
    try:
        system.mount(fallback_device, fallback_mountpoint)
    except CommandError as e:
        raise ProvisionError(
            f"Failed to mount root partition {fallback_device}; "
            "copy the handoff bundle to the new system manually"
        ) from e

    if not system.is_dir(posixpath.join(fallback_mountpoint, marker)):
        raise ProvisionError(
            f"{fallback_device} mounted on {fallback_mountpoint} but has no {marker}/ directory; "
            "copy the handoff bundle to the new system manually"
        )
    return fallback_mountpoint
