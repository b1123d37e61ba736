from __future__ import annotations

import logging
import posixpath
import tempfile
from typing import List

from .. import ui
from ..config import ProvisionConfig
from ..lib.packages import PackageGroup, package_steps
from ..pipeline import RunReport, StageContext, Step, run_steps
from .base import Stage, require_network

logger = logging.getLogger(__name__)


def package_groups(cfg: ProvisionConfig) -> List[PackageGroup]:
    aur = cfg.aur
    helper = str(aur["helper"])
    optional = aur.get("optional") or {}
    return [
        PackageGroup("base", list(aur.get("base_dependencies") or []), helper="pacman"),
        PackageGroup("aur", list(aur.get("packages") or []), helper=helper),
        PackageGroup(
            str(optional.get("name") or "optional"),
            list(optional.get("packages") or []),
            helper=helper,
            optional=True,
        ),
    ]


class AurStage(Stage):
    stage_id = "aur"
    title = "AUR Packages"

    def required_identity(self, cfg: ProvisionConfig) -> str:
        return cfg.username

    def preflight(self, ctx: StageContext) -> None:
        require_network(ctx, str(ctx.config.aur["network_check_host"]))

    def steps(self, ctx: StageContext) -> List[Step]:
        aur = ctx.config.aur
        helper = str(aur["helper"])
        repo = str(aur["helper_repo"])

        def install_helper(ctx: StageContext) -> None:
            # Always build from a fresh clone; a stale checkout breaks makepkg.
            with tempfile.TemporaryDirectory(prefix="archpad-") as tmp:
                dest = posixpath.join(tmp, posixpath.basename(repo).removesuffix(".git"))
                ctx.system.run(["git", "clone", repo, dest])
                ctx.system.run(["makepkg", "-si", "--noconfirm"], cwd=dest, interactive=True)

        steps = [
            Step(
                "install_helper",
                f"AUR helper ({helper})",
                install_helper,
                check=lambda ctx: ctx.system.command_exists(helper),
            )
        ]
        for group in package_groups(ctx.config):
            if not group.optional:
                steps.extend(package_steps(group))
        return steps

    def cleanup_steps(self, ctx: StageContext) -> List[Step]:
        helper = str(ctx.config.aur["helper"])
        pacman = ["pacman", "-Sc", "--noconfirm"]
        if ctx.system.effective_uid() != 0:
            pacman = ["sudo", *pacman]
        return [
            Step(
                "clean_helper_cache",
                f"Clean {helper} cache",
                lambda ctx: ctx.system.run([helper, "-Sc", "--noconfirm"]),
                fatal=False,
            ),
            Step("clean_pacman_cache", "Clean pacman cache", lambda ctx: ctx.system.run(pacman), fatal=False),
        ]

    def run(self, ctx: StageContext) -> RunReport:
        report = RunReport(stage=self.stage_id)
        ui.print_warning("This may take a while as packages are built from source...")
        run_steps(ctx, self.steps(ctx), report)

        for group in package_groups(ctx.config):
            if not group.optional or not group.packages or report.stopped:
                continue
            ui.print_header(f"Installing {group.name} Packages (Optional)")
            ui.print_warning(f"{group.name} packages may fail due to complex dependencies")
            if ctx.ask(f"Install {group.name} packages?"):
                run_steps(ctx, package_steps(group), report)
            else:
                ui.print_warning(f"Skipping {group.name} packages")
                report.declined.append(group.name)

        run_steps(ctx, self.cleanup_steps(ctx), report)
        for n in self.notes(ctx):
            report.note(n)
        return report

    def notes(self, ctx: StageContext) -> List[str]:
        helper = str(ctx.config.aur["helper"])
        return [
            f"Install additional AUR packages with: {helper} -S <package>",
            f"Update all packages with: {helper} -Syu",
            f"Search AUR with: {helper} -Ss <search-term>",
        ]
