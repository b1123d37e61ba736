from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import List

from .. import ui
from ..config import ProvisionConfig
from ..errors import OperatorCancelled, ProvisionError
from ..lib.files import file_matches, tree_files
from ..lib.identity import ROOT
from ..lib.mounts import discover_target_root
from ..pipeline import RunReport, StageContext, Step
from .base import Stage, require_network

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parents[1]

PROFILE_NAME = "archpad.yaml"

LAUNCHER = """#!/bin/sh
# Generated by archpad install
cd {handoff_dir} && exec python3 -m archpad_installer {stage} --config {handoff_dir}/{profile} {extra}"$@"
"""

LAUNCHERS = {
    "post-install.sh": ("post-install", ""),
    # The AUR stage runs unprivileged; keep its log in the user's home.
    "aur-install.sh": ("aur", '--log "$HOME/.cache/archpad-aur.log" '),
}


def render_launcher(handoff_dir: str, stage: str, extra: str = "") -> str:
    return LAUNCHER.format(handoff_dir=handoff_dir, stage=stage, profile=PROFILE_NAME, extra=extra)


def _target_root(ctx: StageContext) -> str:
    if not ctx.target_root:
        raise ProvisionError("Target root unknown; run the discover_target step first")
    return ctx.target_root


def _handoff_path(ctx: StageContext, *parts: str) -> str:
    return posixpath.join(_target_root(ctx), ctx.config.handoff_dir.lstrip("/"), *parts)


class InstallStage(Stage):
    stage_id = "install"
    title = "Arch Linux Installation"

    def required_identity(self, cfg: ProvisionConfig) -> str:
        return ROOT

    def preflight(self, ctx: StageContext) -> None:
        cfg = ctx.config
        if not ctx.system.command_exists("archinstall"):
            raise ProvisionError("archinstall not found. Install it with: pacman -S archinstall")
        if not ctx.system.path_exists(str(cfg.archinstall_config)):
            raise ProvisionError(f"Configuration file not found: {cfg.archinstall_config}")
        require_network(ctx, cfg.install_check_host)

    def run(self, ctx: StageContext) -> RunReport:
        if ctx.start_at in (None, "run_archinstall"):
            ui.print_header("Available Disks")
            ctx.system.run(["lsblk", "-o", "NAME,SIZE,TYPE,MOUNTPOINT"], check=False, interactive=True)
            ui.print_warning(f"WARNING: This will ERASE {ctx.config.target_disk} completely!")
            if not ctx.ask("Continue with installation?"):
                raise OperatorCancelled("Installation cancelled")
        return super().run(ctx)

    def steps(self, ctx: StageContext) -> List[Step]:
        cfg = ctx.config
        handoff = cfg.handoff_dir

        def run_archinstall(ctx: StageContext) -> None:
            ctx.system.run(
                ["archinstall", f"--config={cfg.archinstall_config}", "--silent"],
                interactive=True,
            )

        def discover(ctx: StageContext) -> None:
            ctx.target_root = discover_target_root(
                ctx.system,
                candidates=cfg.mount_candidates,
                marker=cfg.marker_dir,
                fallback_device=cfg.fallback_device,
                fallback_mountpoint=cfg.fallback_mountpoint,
            )
            ui.print_success(f"Found mount point: {ctx.target_root}")

        runtime = cfg.runtime_packages

        def chroot(ctx: StageContext, *argv: str) -> List[str]:
            return ["arch-chroot", _target_root(ctx), *argv]

        def runtime_installed(ctx: StageContext) -> bool:
            return ctx.system.run(chroot(ctx, "pacman", "-Q", *runtime), check=False).ok

        def install_runtime(ctx: StageContext) -> None:
            ctx.system.run(chroot(ctx, "pacman", "-S", "--needed", "--noconfirm", *runtime))

        def package_current(ctx: StageContext) -> bool:
            return all(
                file_matches(
                    ctx.system,
                    _handoff_path(ctx, "archpad_installer", *rel.parts),
                    (PACKAGE_DIR / rel).read_text(encoding="utf-8"),
                )
                for rel in tree_files(str(PACKAGE_DIR))
            )

        def stage_package(ctx: StageContext) -> None:
            ctx.system.copy_tree(str(PACKAGE_DIR), _handoff_path(ctx, "archpad_installer"))

        def profile_current(ctx: StageContext) -> bool:
            return file_matches(ctx.system, _handoff_path(ctx, PROFILE_NAME), cfg.to_yaml())

        def stage_profile(ctx: StageContext) -> None:
            ctx.system.write_file(_handoff_path(ctx, PROFILE_NAME), cfg.to_yaml(), mode=0o644)

        def launchers_current(ctx: StageContext) -> bool:
            return all(
                file_matches(ctx.system, _handoff_path(ctx, name), render_launcher(handoff, stage, extra))
                for name, (stage, extra) in LAUNCHERS.items()
            )

        def stage_launchers(ctx: StageContext) -> None:
            for name, (stage, extra) in LAUNCHERS.items():
                ctx.system.write_file(
                    _handoff_path(ctx, name), render_launcher(handoff, stage, extra), mode=0o755
                )

        return [
            Step("run_archinstall", "Base system installation (archinstall)", run_archinstall),
            Step("discover_target", "Locate the new root filesystem", discover),
            Step(
                "target_runtime",
                f"Python runtime on the new system ({', '.join(runtime)})",
                install_runtime,
                check=runtime_installed,
            ),
            Step("stage_package", f"Stage provisioning tool in {handoff}", stage_package, check=package_current),
            Step("stage_profile", f"Stage provisioning profile in {handoff}", stage_profile, check=profile_current),
            Step("stage_launchers", "Stage post-install and AUR launchers", stage_launchers, check=launchers_current),
        ]

    def notes(self, ctx: StageContext) -> List[str]:
        cfg = ctx.config
        return [
            "Reboot into the new system",
            f"Run as root: {cfg.handoff_dir}/post-install.sh",
            f"After first login as {cfg.username}, run: {cfg.handoff_dir}/aur-install.sh",
            "Clone your dotfiles repository",
        ]
