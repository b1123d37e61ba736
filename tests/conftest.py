from __future__ import annotations

import posixpath
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import pytest

from archpad_installer.config import load_config
from archpad_installer.errors import CommandError
from archpad_installer.lib.command import CmdResult
from archpad_installer.lib.files import tree_files
from archpad_installer.pipeline import StageContext

READ_ONLY = {
    ("timedatectl", "show"),
    ("lsblk",),
}


def _read_only(argv: List[str]) -> bool:
    if argv[:1] == ["arch-chroot"]:
        return argv[2:4] == ["pacman", "-Q"]
    return any(tuple(argv[: len(p)]) == p for p in READ_ONLY)


class FakeSystem:
    """In-memory stand-in for LiveSystem.

    Every mutation is appended to ``actions`` so tests can assert on exactly
    what a run changed.
    """

    def __init__(
        self,
        *,
        euid: int = 0,
        users: Optional[Dict[str, int]] = None,
        files: Optional[Dict[str, str]] = None,
        dirs: Optional[Set[str]] = None,
        packages: Optional[Set[str]] = None,
        services: Optional[Set[str]] = None,
        commands: Optional[Set[str]] = None,
        online: bool = True,
    ) -> None:
        self.dry_run = False
        self.euid = euid
        self.users: Dict[str, int] = dict(users or {})
        self.files: Dict[str, str] = dict(files or {})
        self.modes: Dict[str, int] = {}
        self.owners: Dict[str, str] = {}
        self.dirs: Set[str] = set(dirs or set())
        self.packages: Set[str] = set(packages or set())
        self.services: Set[str] = set(services or set())
        self.commands: Set[str] = set(commands or set())
        self.online = online
        self.timezone = ""
        self.fw_active = False
        self.fw_defaults: Optional[str] = None
        self.fw_allow: List[str] = []
        self.passwords: Set[str] = set()
        # Packages inside the new root, as seen through arch-chroot.
        self.target_packages: Set[str] = set()
        # Logical clock standing in for file modification times.
        self.clock = 0
        self.mtimes: Dict[str, int] = {}

        self.actions: List[tuple] = []
        self.fail_packages: Set[str] = set()
        self.fail_commands: Dict[str, int] = {}
        self.fail_mount = False
        self.fail_password = False
        # Directories that appear once a device is mounted.
        self.mount_provides: Dict[str, Set[str]] = {}

    # queries

    def effective_uid(self) -> int:
        return self.euid

    def user_uid(self, name: str) -> Optional[int]:
        return self.users.get(name)

    def user_exists(self, name: str) -> bool:
        return name in self.users

    def command_exists(self, name: str) -> bool:
        return name in self.commands

    def path_exists(self, path: str) -> bool:
        return path in self.files or path in self.dirs

    def is_dir(self, path: str) -> bool:
        return path in self.dirs

    def read_text(self, path: str) -> Optional[str]:
        return self.files.get(path)

    def package_installed(self, name: str) -> bool:
        return name in self.packages

    def service_enabled(self, name: str) -> bool:
        return name in self.services

    def firewall_status(self) -> str:
        if not self.fw_active:
            return "Status: inactive\n"
        lines = ["Status: active", f"Default: {self.fw_defaults}", "", "To Action From", "-- ------ ----"]
        lines += [f"{rule} ALLOW IN Anywhere" for rule in self.fw_allow]
        return "\n".join(lines) + "\n"

    def password_set(self, name: str) -> bool:
        return name in self.passwords

    def mtime(self, path: str) -> Optional[int]:
        if path not in self.files:
            return None
        return self.mtimes.get(path, 0)

    def is_online(self, host: str) -> bool:
        return self.online

    # actions

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        interactive: bool = False,
        cwd: Optional[str] = None,
    ) -> CmdResult:
        argv = list(argv)
        if not _read_only(argv):
            self.actions.append(("run", tuple(argv)))

        rc = self.fail_commands.get(argv[0], 0)
        stdout = ""
        if rc == 0:
            rc, stdout = self._simulate(argv)
        if check and rc != 0:
            raise CommandError(argv, rc, "simulated failure")
        return CmdResult(argv=argv, returncode=rc, stdout=stdout, stderr="")

    def _simulate(self, argv: List[str]) -> Tuple[int, str]:
        if argv[:2] == ["timedatectl", "show"]:
            return 0, self.timezone + "\n"
        if argv[:1] == ["arch-chroot"]:
            op, pkgs = argv[3], argv[4:]
            if op == "-Q":
                return (0 if set(pkgs) <= self.target_packages else 1), ""
            self.target_packages.update(p for p in pkgs if not p.startswith("-"))
            return 0, ""
        if argv[:2] == ["timedatectl", "set-timezone"]:
            self.timezone = argv[2]
        elif argv[:2] == ["hostnamectl", "set-hostname"]:
            self.files["/etc/hostname"] = argv[2] + "\n"
        elif argv[:2] == ["localectl", "set-locale"]:
            self.files["/etc/locale.conf"] = argv[2] + "\n"
        elif argv[0] == "ufw":
            args = [a for a in argv[1:] if a != "--force"]
            if args[0] == "default":
                self.fw_defaults = self._defaults_with(args[1], args[2])
            elif args[0] == "allow" and args[1] not in self.fw_allow:
                self.fw_allow.append(args[1])
            elif args[0] == "enable":
                self.fw_active = True
        elif argv[:2] == ["makepkg", "-si"]:
            self.commands.add("yay")
        elif argv[0] == "grub-mkconfig":
            self._touch(argv[2], "# generated from /etc/default/grub\n")
        return 0, ""

    def _touch(self, path: str, content: str) -> None:
        self.clock += 1
        self.files[path] = content
        self.mtimes[path] = self.clock

    def _defaults_with(self, policy: str, direction: str) -> str:
        current = {"incoming": "deny", "outgoing": "allow"}
        if self.fw_defaults:
            for part in self.fw_defaults.split(", "):
                value, _, d = part.partition(" ")
                current[d.strip("()")] = value
        current[direction] = policy
        return f"{current['incoming']} (incoming), {current['outgoing']} (outgoing)"

    def write_file(
        self, path: str, content: str, *, mode: Optional[int] = None, owner: Optional[str] = None
    ) -> None:
        self.actions.append(("write", path))
        self._touch(path, content)
        if mode is not None:
            self.modes[path] = mode
        if owner:
            self.owners[path] = owner

    def append_file(self, path: str, content: str) -> None:
        self.actions.append(("append", path))
        self._touch(path, self.files.get(path, "") + content)

    def remove_file(self, path: str) -> None:
        self.actions.append(("remove", path))
        self.files.pop(path, None)

    def make_dirs(self, path: str, *, owner: Optional[str] = None) -> None:
        self.actions.append(("mkdir", path))
        self.dirs.add(path)
        if owner:
            self.owners[path] = owner

    def copy_tree(self, src: str, dst: str) -> None:
        self.actions.append(("copy_tree", src, dst))
        for rel in tree_files(src):
            self._touch(posixpath.join(dst, rel.as_posix()), (Path(src) / rel).read_text(encoding="utf-8"))
        self.dirs.add(dst)

    def chown_tree(self, path: str, owner: str) -> None:
        self.actions.append(("chown", path, owner))

    def chmod(self, path: str, mode: int) -> None:
        self.actions.append(("chmod", path, mode))
        self.modes[path] = mode

    def create_user(self, name: str, *, shell: str, groups: Sequence[str]) -> None:
        self.actions.append(("useradd", name, shell, tuple(groups)))
        self.users[name] = 1000
        self.dirs.add(f"/home/{name}")

    def set_password(self, name: str) -> None:
        self.actions.append(("passwd", name))
        if self.fail_password:
            raise CommandError(["passwd", name], 10, "passwords do not match")
        self.passwords.add(name)

    def enable_service(self, name: str) -> None:
        self.actions.append(("enable", name))
        self.services.add(name)

    def install_package(self, name: str, *, helper: str = "pacman") -> None:
        self.actions.append(("install", name, helper))
        if name in self.fail_packages:
            raise CommandError([helper, "-S", name], 1, "simulated build failure")
        self.packages.add(name)

    def mount(self, device: str, mountpoint: str) -> None:
        self.actions.append(("mount", device, mountpoint))
        if self.fail_mount:
            raise CommandError(["mount", device, mountpoint], 32, "simulated mount failure")
        self.dirs.update(self.mount_provides.get(device, set()))


@pytest.fixture
def cfg():
    return load_config()


@pytest.fixture
def make_ctx(cfg):
    def _make(system: FakeSystem, **kwargs) -> StageContext:
        kwargs.setdefault("confirm", lambda question: True)
        return StageContext(config=cfg, system=system, **kwargs)

    return _make
