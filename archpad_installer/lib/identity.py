from __future__ import annotations

import logging
from typing import Optional

from ..errors import IdentityError
from ..system import System

logger = logging.getLogger(__name__)

ROOT = "root"


def require_identity(system: System, required: str) -> None:
    """Fail unless the process runs as ``required`` (a user name, or "root").

    Runs before anything else in a stage, so a mismatch leaves the machine
    untouched.
    """

    euid = system.effective_uid()
    if required == ROOT:
        if euid != 0:
            raise IdentityError("This stage must be run as root")
        logger.info("Identity verified: root")
        return

    uid: Optional[int] = system.user_uid(required)
    if uid is None:
        raise IdentityError(f"User '{required}' does not exist. Run post-install first.")
    if euid != uid:
        raise IdentityError(f"This stage must be run as '{required}' (uid {uid}), not uid {euid}")
    logger.info("Identity verified: %s (uid=%s)", required, uid)
