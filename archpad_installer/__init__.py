"""Archpad provisioning tool.

Three operator-driven stages bring an Arch Linux desktop from live ISO to a
usable workstation:

- install: run archinstall, find the new root, stage the next stages on it
- post-install: users, sudo, networking, firewall, services, mounts, boot theme
- aur: package helper plus curated AUR packages, best-effort

Every step is idempotent and guarded by a live-system check, so any stage can
be re-run after a partial failure.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
