from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

# Root stages (install, post-install) log here. The aur launcher passes
# --log ~/.cache/archpad-aur.log since the provisioned user cannot write /var/log.
DEFAULT_LOG_PATH = "/var/log/archpad-installer.log"
FALLBACK_LOG_NAME = "archpad-installer.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _open_log(log_path: str) -> tuple[logging.Handler, str]:
    """FileHandler for log_path, or for the working directory if that is not writable."""

    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = False,
) -> str:
    """Send every command, step decision and outcome to the provisioning log.

    Runs append to the same file, so a re-run after a failure follows the
    failed attempt in the log. The console shows only the operator output
    from ``ui``; ``also_console`` (--verbose) mirrors the raw records there.

    Calling this twice keeps the first configuration. Returns the path
    actually written to.
    """

    root = logging.getLogger()
    root.setLevel(level)

    existing = getattr(root, "_archpad_log_path", None)
    if existing:
        return existing

    file_handler, chosen_path = _open_log(log_path)
    file_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    root.addHandler(file_handler)

    if also_console:
        root.addHandler(RichHandler(show_path=False, markup=False))

    setattr(root, "_archpad_log_path", chosen_path)

    if chosen_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s; logging to %s", log_path, chosen_path)
    logging.getLogger(__name__).info("Logging to %s", chosen_path)
    return chosen_path
