from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "hostname": "archpad",
    "locale": "C.UTF-8",
    "timezone": "Asia/Tokyo",
    "user": {
        "name": "gyarepyon",
        "shell": "/bin/fish",
        "groups": ["wheel", "kvm", "libvirt", "docker"],
        "home_dirs": ["Documents", "Downloads", "Pictures", "Videos", "Projects", "Music"],
    },
    "install": {
        "archinstall_config": "archinstall-config.json",
        "target_disk": "/dev/nvme0n1",
        "mount_candidates": ["/mnt/archinstall", "/mnt"],
        "marker_dir": "root",
        "fallback_device": "/dev/nvme0n1p3",
        "fallback_mountpoint": "/mnt",
        "handoff_dir": "/opt/archpad",
        # Needed by the handoff launchers on the new system.
        "runtime_packages": ["python", "python-yaml", "python-rich"],
        "network_check_host": "archlinux.org",
    },
    "sudoers": {
        "path": "/etc/sudoers.d/wheel",
        "rule": "%wheel ALL=(ALL:ALL) ALL",
    },
    "network_manager": {
        "path": "/etc/NetworkManager/conf.d/custom.conf",
        "plugins": "ifupdown,keyfile",
        "dhcp": "dhclient",
    },
    "services": [
        "NetworkManager",
        "bluetooth",
        "systemd-resolved",
        "ufw",
        "libvirtd",
        "systemd-timesyncd",
        "docker",
    ],
    "firewall": {
        "incoming": "deny",
        "outgoing": "allow",
        "allow": ["22/tcp", "80/tcp", "443/tcp"],
    },
    "smb_share": {
        "source": "//192.168.50.155/momonga",
        "mountpoint": "/mnt/momonga",
        "credentials": "/etc/samba/credentials",
        "options": "uid=1000,gid=1000,iocharset=utf8,_netdev,noauto,x-systemd.automount",
    },
    "grub": {
        "defaults_path": "/etc/default/grub",
        "cfg_path": "/boot/grub/grub.cfg",
        "theme_dir": "/boot/grub/themes/catppuccin-mocha-grub-theme",
        "timeout": 5,
        "timeout_style": "menu",
    },
    "greeter": {
        "path": "/etc/greetd/config.toml",
        "vt": 1,
        "command": "agreety --cmd /bin/fish",
        "user": "greeter",
    },
    "aur": {
        "network_check_host": "aur.archlinux.org",
        "helper": "yay",
        "helper_repo": "https://aur.archlinux.org/yay-bin.git",
        "base_dependencies": ["gtk3", "gobject-introspection", "gtk-layer-shell"],
        "packages": [
            "1password",
            "visual-studio-code-bin",
            "discord",
            "rose-pine-cursor",
            "rose-pine-hyprcursor",
            "rofi-wayland",
            "walker-bin",
        ],
        "optional": {
            "name": "AGS",
            "packages": [
                "aylurs-gtk-shell-git",
                "libastal-4-git",
                "ags-hyprpanel-git",
                "appmenu-glib-translator-git",
            ],
        },
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


@dataclass(frozen=True)
class ProvisionConfig:
    raw: Dict[str, Any]
    base_dir: Path = field(default_factory=Path.cwd)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    def resolve(self, path: str) -> Path:
        p = Path(path).expanduser()
        return p if p.is_absolute() else self.base_dir / p

    @property
    def hostname(self) -> str:
        return str(self.raw.get("hostname") or DEFAULTS["hostname"])

    @property
    def locale(self) -> str:
        return str(self.raw.get("locale") or DEFAULTS["locale"])

    @property
    def timezone(self) -> str:
        return str(self.raw.get("timezone") or DEFAULTS["timezone"])

    # user

    @property
    def username(self) -> str:
        return str(self._section("user").get("name"))

    @property
    def user_shell(self) -> str:
        return str(self._section("user").get("shell"))

    @property
    def user_groups(self) -> List[str]:
        return [str(g) for g in self._section("user").get("groups") or []]

    @property
    def home_dir(self) -> str:
        return f"/home/{self.username}"

    @property
    def home_dirs(self) -> List[str]:
        return [str(d) for d in self._section("user").get("home_dirs") or []]

    # install stage

    @property
    def archinstall_config(self) -> Path:
        return self.resolve(str(self._section("install").get("archinstall_config")))

    @property
    def target_disk(self) -> str:
        return str(self._section("install").get("target_disk"))

    @property
    def mount_candidates(self) -> List[str]:
        return [str(p) for p in self._section("install").get("mount_candidates") or []]

    @property
    def marker_dir(self) -> str:
        return str(self._section("install").get("marker_dir"))

    @property
    def fallback_device(self) -> Optional[str]:
        dev = self._section("install").get("fallback_device")
        return str(dev) if dev else None

    @property
    def fallback_mountpoint(self) -> str:
        return str(self._section("install").get("fallback_mountpoint"))

    @property
    def handoff_dir(self) -> str:
        return str(self._section("install").get("handoff_dir"))

    @property
    def runtime_packages(self) -> List[str]:
        return [str(p) for p in self._section("install").get("runtime_packages") or []]

    @property
    def install_check_host(self) -> str:
        return str(self._section("install").get("network_check_host"))

    # post-install stage

    @property
    def sudoers_path(self) -> str:
        return str(self._section("sudoers").get("path"))

    @property
    def sudoers_rule(self) -> str:
        return str(self._section("sudoers").get("rule"))

    @property
    def network_manager(self) -> Dict[str, Any]:
        return dict(self._section("network_manager"))

    @property
    def services(self) -> List[str]:
        return [str(s) for s in self.raw.get("services") or []]

    @property
    def firewall(self) -> Dict[str, Any]:
        return dict(self._section("firewall"))

    @property
    def smb_share(self) -> Dict[str, Any]:
        return dict(self._section("smb_share"))

    @property
    def grub(self) -> Dict[str, Any]:
        return dict(self._section("grub"))

    @property
    def greeter(self) -> Dict[str, Any]:
        return dict(self._section("greeter"))

    # aur stage

    @property
    def aur(self) -> Dict[str, Any]:
        return dict(self._section("aur"))

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.raw, sort_keys=False)


def load_config(path: Optional[str] = None) -> ProvisionConfig:
    """Load a YAML provisioning profile merged over the built-in defaults.

    With no path the defaults are used as-is and relative paths resolve
    against the working directory.
    """

    if path is None:
        return ProvisionConfig(raw=copy.deepcopy(DEFAULTS))

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Provisioning profile not found: {path}")

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("provisioning profile must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"{p.name} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"{p.name} must contain a mapping/object")

    merged = _merge(DEFAULTS, raw)
    for key, default in DEFAULTS.items():
        if isinstance(default, dict) and not isinstance(merged.get(key), dict):
            raise ValueError(f"{p.name}: section '{key}' must be a mapping")

    return ProvisionConfig(raw=merged, base_dir=p.resolve().parent)
