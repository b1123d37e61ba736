from __future__ import annotations

import logging
import os
import pwd
import shutil
from pathlib import Path
from typing import Optional, Protocol, Sequence

from .lib.command import CmdResult, run_cmd
from .lib.files import copy_tree

logger = logging.getLogger(__name__)


class System(Protocol):
    """Everything the stages know about the machine they provision.

    Queries never mutate. Actions raise ``CommandError`` / ``OSError`` on
    failure; the step executor decides whether that is fatal.
    """

    dry_run: bool

    # queries
    def effective_uid(self) -> int: ...
    def user_uid(self, name: str) -> Optional[int]: ...
    def user_exists(self, name: str) -> bool: ...
    def command_exists(self, name: str) -> bool: ...
    def path_exists(self, path: str) -> bool: ...
    def is_dir(self, path: str) -> bool: ...
    def read_text(self, path: str) -> Optional[str]: ...
    def package_installed(self, name: str) -> bool: ...
    def service_enabled(self, name: str) -> bool: ...
    def firewall_status(self) -> str: ...
    def password_set(self, name: str) -> bool: ...
    def mtime(self, path: str) -> Optional[float]: ...
    def is_online(self, host: str) -> bool: ...

    # actions
    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        interactive: bool = False,
        cwd: Optional[str] = None,
    ) -> CmdResult: ...
    def write_file(
        self, path: str, content: str, *, mode: Optional[int] = None, owner: Optional[str] = None
    ) -> None: ...
    def append_file(self, path: str, content: str) -> None: ...
    def remove_file(self, path: str) -> None: ...
    def make_dirs(self, path: str, *, owner: Optional[str] = None) -> None: ...
    def copy_tree(self, src: str, dst: str) -> None: ...
    def chown_tree(self, path: str, owner: str) -> None: ...
    def chmod(self, path: str, mode: int) -> None: ...
    def create_user(self, name: str, *, shell: str, groups: Sequence[str]) -> None: ...
    def set_password(self, name: str) -> None: ...
    def enable_service(self, name: str) -> None: ...
    def install_package(self, name: str, *, helper: str = "pacman") -> None: ...
    def mount(self, device: str, mountpoint: str) -> None: ...


class LiveSystem:
    """System backed by the running machine.

    In dry-run mode read-only queries still execute; every mutation is
    logged and skipped.
    """

    def __init__(self, *, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    # queries

    def effective_uid(self) -> int:
        return os.geteuid()

    def user_uid(self, name: str) -> Optional[int]:
        try:
            return pwd.getpwnam(name).pw_uid
        except KeyError:
            return None

    def user_exists(self, name: str) -> bool:
        return self.user_uid(name) is not None

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def path_exists(self, path: str) -> bool:
        return Path(path).exists()

    def is_dir(self, path: str) -> bool:
        return Path(path).is_dir()

    def read_text(self, path: str) -> Optional[str]:
        p = Path(path)
        if not p.is_file():
            return None
        return p.read_text(encoding="utf-8")

    def package_installed(self, name: str) -> bool:
        return run_cmd(["pacman", "-Q", name], check=False).ok

    def service_enabled(self, name: str) -> bool:
        r = run_cmd(["systemctl", "is-enabled", name], check=False)
        return r.ok and r.stdout.strip() == "enabled"

    def firewall_status(self) -> str:
        return run_cmd(["ufw", "status", "verbose"], check=False).stdout

    def password_set(self, name: str) -> bool:
        # passwd -S: "<user> P|L|NP <date> ..."; only P is a usable password.
        r = run_cmd(["passwd", "-S", name], check=False)
        fields = r.stdout.split()
        return r.ok and len(fields) > 1 and fields[1] == "P"

    def mtime(self, path: str) -> Optional[float]:
        try:
            return Path(path).stat().st_mtime
        except FileNotFoundError:
            return None

    def is_online(self, host: str) -> bool:
        """Best-effort reachability check."""

        return run_cmd(["ping", "-c", "1", "-W", "3", host], check=False).ok

    # actions

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        interactive: bool = False,
        cwd: Optional[str] = None,
    ) -> CmdResult:
        return run_cmd(
            argv,
            check=check,
            interactive=interactive,
            cwd=cwd,
            dry_run=self.dry_run,
        )

    def write_file(
        self, path: str, content: str, *, mode: Optional[int] = None, owner: Optional[str] = None
    ) -> None:
        p = Path(path)
        if self.dry_run:
            logger.info("Would write %s", str(p))
            return
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")
        if mode is not None:
            p.chmod(mode)
        if owner:
            shutil.chown(p, user=owner, group=owner)
        logger.info("Wrote %s", str(p))

    def append_file(self, path: str, content: str) -> None:
        p = Path(path)
        if self.dry_run:
            logger.info("Would append to %s", str(p))
            return
        with p.open("a", encoding="utf-8") as f:
            f.write(content)
        logger.info("Appended to %s", str(p))

    def remove_file(self, path: str) -> None:
        if self.dry_run:
            logger.info("Would remove %s", path)
            return
        Path(path).unlink(missing_ok=True)
        logger.info("Removed %s", path)

    def make_dirs(self, path: str, *, owner: Optional[str] = None) -> None:
        if self.dry_run:
            logger.info("Would create directory %s", path)
            return
        Path(path).mkdir(parents=True, exist_ok=True)
        if owner:
            shutil.chown(path, user=owner, group=owner)

    def copy_tree(self, src: str, dst: str) -> None:
        copy_tree(src, dst, dry_run=self.dry_run)

    def chown_tree(self, path: str, owner: str) -> None:
        self.run(["chown", "-R", f"{owner}:{owner}", path])

    def chmod(self, path: str, mode: int) -> None:
        if self.dry_run:
            logger.info("Would chmod %o %s", mode, path)
            return
        Path(path).chmod(mode)

    def create_user(self, name: str, *, shell: str, groups: Sequence[str]) -> None:
        argv = ["useradd", "-m", "-s", shell]
        if groups:
            argv += ["-G", ",".join(groups)]
        self.run([*argv, name])

    def set_password(self, name: str) -> None:
        self.run(["passwd", name], interactive=True)

    def enable_service(self, name: str) -> None:
        self.run(["systemctl", "enable", name])

    def install_package(self, name: str, *, helper: str = "pacman") -> None:
        if helper == "pacman":
            argv = ["pacman", "-S", "--noconfirm", "--needed", name]
            if self.effective_uid() != 0:
                argv = ["sudo", *argv]
            self.run(argv)
        else:
            # AUR helpers build as the invoking user and escalate themselves.
            self.run([helper, "-S", name, "--noconfirm", "--removemake"], interactive=True)

    def mount(self, device: str, mountpoint: str) -> None:
        self.run(["mount", device, mountpoint])
