from __future__ import annotations

import logging
import posixpath
from typing import Dict, List

from .. import ui
from ..config import ProvisionConfig
from ..lib.files import file_matches, install_checked_file
from ..lib.fstab import FstabEntry, has_mountpoint, render_block
from ..lib.identity import ROOT
from ..lib.textpatch import has_setting, upsert_settings
from ..pipeline import StageContext, Step
from .base import Stage

logger = logging.getLogger(__name__)


NETWORK_MANAGER_CONF = """[main]
plugins={plugins}
dhcp={dhcp}

[ifupdown]
managed=false
"""

SMB_CREDENTIALS_TEMPLATE = "username=\npassword=\n"

GREETD_CONF = """[terminal]
vt = {vt}

[default_session]
command = "{command}"
user = "{user}"
"""

FIRST_LOGIN_SCRIPT = """#!/bin/bash
# First Login Setup Script
# Run this after your first login as {username}

set -euo pipefail

echo "=== First Login Setup ==="

echo "Enabling user services..."
systemctl --user enable pipewire.socket
systemctl --user enable wireplumber.service
systemctl --user start pipewire.socket
systemctl --user start wireplumber.service

echo "✓ User services enabled"

if command -v rustup &>/dev/null; then
  echo "Initializing Rust..."
  rustup default stable
  echo "✓ Rust initialized"
fi

echo ""
echo "=== Setup Complete ==="
echo "Next steps:"
echo "1. Run {handoff_dir}/aur-install.sh to install AUR packages"
echo "2. Clone your dotfiles repository"
echo "3. Configure your environment"
echo ""
"""


def grub_settings(cfg: ProvisionConfig) -> Dict[str, str]:
    grub = cfg.grub
    return {
        "GRUB_THEME": f'"{grub["theme_dir"]}/theme.txt"',
        "GRUB_TIMEOUT": str(grub["timeout"]),
        "GRUB_TIMEOUT_STYLE": str(grub["timeout_style"]),
    }


def smb_entry(cfg: ProvisionConfig) -> FstabEntry:
    smb = cfg.smb_share
    return FstabEntry(
        spec=str(smb["source"]),
        mountpoint=str(smb["mountpoint"]),
        fstype="cifs",
        options=f"credentials={smb['credentials']},{smb['options']}",
    )


def _firewall_allows(status: str, rule: str) -> bool:
    for line in status.splitlines():
        fields = line.split()
        if fields and fields[0] == rule and "ALLOW" in fields:
            return True
    return False


class PostInstallStage(Stage):
    stage_id = "post-install"
    title = "Post-Installation Configuration"

    def required_identity(self, cfg: ProvisionConfig) -> str:
        return ROOT

    def steps(self, ctx: StageContext) -> List[Step]:
        return [
            *self._system_settings(ctx.config),
            *self._access(ctx.config),
            *self._network(ctx.config),
            *self._smb_share(ctx.config),
            *self._boot_and_login(ctx.config),
            *self._user_home(ctx.config),
        ]

    def _system_settings(self, cfg: ProvisionConfig) -> List[Step]:
        def hostname_set(ctx: StageContext) -> bool:
            return (ctx.system.read_text("/etc/hostname") or "").strip() == cfg.hostname

        def locale_set(ctx: StageContext) -> bool:
            return has_setting(ctx.system.read_text("/etc/locale.conf") or "", "LANG", cfg.locale)

        def timezone_set(ctx: StageContext) -> bool:
            r = ctx.system.run(["timedatectl", "show", "-p", "Timezone", "--value"], check=False)
            return r.stdout.strip() == cfg.timezone

        # archinstall already sets these; a mismatch is worth fixing but never fatal.
        return [
            Step(
                "hostname",
                f"Hostname {cfg.hostname}",
                lambda ctx: ctx.system.run(["hostnamectl", "set-hostname", cfg.hostname]),
                check=hostname_set,
                fatal=False,
            ),
            Step(
                "locale",
                f"Locale {cfg.locale}",
                lambda ctx: ctx.system.run(["localectl", "set-locale", f"LANG={cfg.locale}"]),
                check=locale_set,
                fatal=False,
            ),
            Step(
                "timezone",
                f"Timezone {cfg.timezone}",
                lambda ctx: ctx.system.run(["timedatectl", "set-timezone", cfg.timezone]),
                check=timezone_set,
                fatal=False,
            ),
        ]

    def _access(self, cfg: ProvisionConfig) -> List[Step]:
        user = cfg.username
        sudoers = cfg.sudoers_path

        def create_user(ctx: StageContext) -> None:
            ctx.system.create_user(user, shell=cfg.user_shell, groups=cfg.user_groups)

        def set_password(ctx: StageContext) -> None:
            ui.print_note(f"Set password for {user}:")
            ctx.system.set_password(user)

        def configure_sudoers(ctx: StageContext) -> None:
            install_checked_file(
                ctx.system,
                sudoers,
                cfg.sudoers_rule + "\n",
                mode=0o440,
                validate=["visudo", "-c", "-f", sudoers],
            )

        return [
            Step(
                "create_user",
                f"User account '{user}'",
                create_user,
                check=lambda ctx: ctx.system.user_exists(user),
            ),
            Step(
                "set_password",
                f"Password for '{user}'",
                set_password,
                check=lambda ctx: ctx.system.password_set(user),
            ),
            Step(
                "sudoers",
                "Wheel group sudo access",
                configure_sudoers,
                check=lambda ctx: ctx.system.path_exists(sudoers),
            ),
        ]

    def _network(self, cfg: ProvisionConfig) -> List[Step]:
        nm = cfg.network_manager
        nm_path = str(nm["path"])
        nm_conf = NETWORK_MANAGER_CONF.format(plugins=nm["plugins"], dhcp=nm["dhcp"])

        steps: List[Step] = [
            Step(
                "network_manager",
                "NetworkManager configuration",
                lambda ctx: ctx.system.write_file(nm_path, nm_conf, mode=0o644),
                check=lambda ctx: file_matches(ctx.system, nm_path, nm_conf),
            )
        ]

        for service in cfg.services:
            steps.append(
                Step(
                    f"enable_{service}",
                    f"Enable {service}",
                    lambda ctx, service=service: ctx.system.enable_service(service),
                    check=lambda ctx, service=service: ctx.system.service_enabled(service),
                    subject=service,
                )
            )

        fw = cfg.firewall
        incoming, outgoing = str(fw["incoming"]), str(fw["outgoing"])
        defaults_line = f"Default: {incoming} (incoming), {outgoing} (outgoing)"

        def firewall_defaults(ctx: StageContext) -> None:
            ctx.system.run(["ufw", "--force", "default", incoming, "incoming"])
            ctx.system.run(["ufw", "--force", "default", outgoing, "outgoing"])

        steps.append(
            Step(
                "firewall_defaults",
                f"Firewall defaults ({incoming} incoming, {outgoing} outgoing)",
                firewall_defaults,
                check=lambda ctx: defaults_line in ctx.system.firewall_status(),
            )
        )
        for rule in fw.get("allow") or []:
            rule = str(rule)
            steps.append(
                Step(
                    f"firewall_allow_{rule}",
                    f"Firewall allows {rule}",
                    lambda ctx, rule=rule: ctx.system.run(["ufw", "allow", rule]),
                    check=lambda ctx, rule=rule: _firewall_allows(ctx.system.firewall_status(), rule),
                    subject=rule,
                )
            )
        steps.append(
            Step(
                "firewall_enable",
                "Firewall enabled",
                lambda ctx: ctx.system.run(["ufw", "--force", "enable"]),
                check=lambda ctx: "Status: active" in ctx.system.firewall_status(),
            )
        )
        return steps

    def _smb_share(self, cfg: ProvisionConfig) -> List[Step]:
        smb = cfg.smb_share
        mountpoint = str(smb["mountpoint"])
        credentials = str(smb["credentials"])
        entry = smb_entry(cfg)

        def write_credentials(ctx: StageContext) -> None:
            ctx.system.write_file(credentials, SMB_CREDENTIALS_TEMPLATE, mode=0o600, owner="root")
            ui.print_warning(f"SMB credentials file created at {credentials}")
            ui.print_warning(f"Edit {credentials} with your SMB username and password")

        def fstab_has_share(ctx: StageContext) -> bool:
            return has_mountpoint(ctx.system.read_text("/etc/fstab") or "", mountpoint)

        def add_fstab_entry(ctx: StageContext) -> None:
            ctx.system.append_file("/etc/fstab", render_block(entry, comment="SMB share"))

        return [
            Step(
                "smb_mountpoint",
                f"Mount point {mountpoint}",
                lambda ctx: ctx.system.make_dirs(mountpoint),
                check=lambda ctx: ctx.system.is_dir(mountpoint),
            ),
            Step(
                "smb_credentials",
                "SMB credentials file",
                write_credentials,
                check=lambda ctx: ctx.system.path_exists(credentials),
            ),
            Step(
                "smb_fstab",
                "SMB mount in fstab (automount on access)",
                add_fstab_entry,
                check=fstab_has_share,
            ),
        ]

    def _boot_and_login(self, cfg: ProvisionConfig) -> List[Step]:
        grub = cfg.grub
        theme_dir = str(grub["theme_dir"])
        defaults_path = str(grub["defaults_path"])
        cfg_path = str(grub["cfg_path"])
        settings = grub_settings(cfg)

        def create_theme_dir(ctx: StageContext) -> None:
            ctx.system.make_dirs(theme_dir)
            ui.print_warning("Manual GRUB theme installation required")
            ui.print_warning(f"Clone the theme into {theme_dir}")

        def grub_patched(ctx: StageContext) -> bool:
            text = ctx.system.read_text(defaults_path)
            return text is not None and all(has_setting(text, k, v) for k, v in settings.items())

        def patch_grub(ctx: StageContext) -> None:
            text = ctx.system.read_text(defaults_path) or ""
            patched = upsert_settings(text, settings, uncomment=frozenset({"GRUB_THEME"}))
            ctx.system.write_file(defaults_path, patched)

        def grub_cfg_current(ctx: StageContext) -> bool:
            # grub.cfg must be regenerated after every change to the defaults file.
            generated, defaults = ctx.system.mtime(cfg_path), ctx.system.mtime(defaults_path)
            return generated is not None and defaults is not None and generated >= defaults

        greeter = cfg.greeter
        greetd_path = str(greeter["path"])

        def configure_greetd(ctx: StageContext) -> None:
            ctx.system.write_file(
                greetd_path,
                GREETD_CONF.format(vt=greeter["vt"], command=greeter["command"], user=greeter["user"]),
                mode=0o644,
            )
            ctx.system.enable_service("greetd")
            ui.print_warning(f"To enable auto-login, edit {greetd_path}")

        return [
            Step(
                "grub_theme_dir",
                "GRUB theme directory",
                create_theme_dir,
                check=lambda ctx: ctx.system.is_dir(theme_dir),
            ),
            Step("grub_defaults", f"GRUB defaults in {defaults_path}", patch_grub, check=grub_patched),
            Step(
                "grub_mkconfig",
                f"Regenerate {cfg_path}",
                lambda ctx: ctx.system.run(["grub-mkconfig", "-o", cfg_path]),
                check=grub_cfg_current,
            ),
            Step(
                "greetd",
                "Greetd login manager",
                configure_greetd,
                check=lambda ctx: ctx.system.path_exists(greetd_path),
            ),
        ]

    def _user_home(self, cfg: ProvisionConfig) -> List[Step]:
        user = cfg.username
        home = cfg.home_dir
        dirs = [posixpath.join(home, d) for d in cfg.home_dirs]
        script_path = posixpath.join(home, "first-login-setup.sh")
        script = FIRST_LOGIN_SCRIPT.format(username=user, handoff_dir=cfg.handoff_dir)

        def make_home_dirs(ctx: StageContext) -> None:
            for d in dirs:
                ctx.system.make_dirs(d, owner=user)

        def finalize_home(ctx: StageContext) -> None:
            ctx.system.chown_tree(home, user)
            ctx.system.chmod(home, 0o755)

        return [
            Step(
                "home_dirs",
                "Home directories",
                make_home_dirs,
                check=lambda ctx: all(ctx.system.is_dir(d) for d in dirs),
            ),
            Step(
                "first_login_script",
                f"First login setup script at {script_path}",
                lambda ctx: ctx.system.write_file(script_path, script, mode=0o755, owner=user),
                check=lambda ctx: file_matches(ctx.system, script_path, script),
            ),
            Step("home_ownership", f"Ownership of {home}", finalize_home),
            Step(
                "clean_cache",
                "Clean pacman cache",
                lambda ctx: ctx.system.run(["pacman", "-Sc", "--noconfirm"]),
                fatal=False,
            ),
        ]

    def notes(self, ctx: StageContext) -> List[str]:
        cfg = ctx.config
        return [
            f"Edit {cfg.smb_share['credentials']} with your SMB credentials (username=..., password=...)",
            "Reboot the system",
            f"Login as {cfg.username}",
            "Run: ~/first-login-setup.sh",
            f"Run as {cfg.username}: {cfg.handoff_dir}/aur-install.sh",
            "Clone your dotfiles repository: git clone <your-dotfiles-repo> ~/.dotfiles",
            "WiFi: nmcli device wifi connect <SSID> password <password>",
        ]
