from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ..pipeline import StageContext, Step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageGroup:
    name: str
    packages: List[str] = field(default_factory=list)
    # "pacman" or the AUR helper binary
    helper: str = "pacman"
    optional: bool = False


def _dedup(names: Sequence[str]) -> List[str]:
    out: List[str] = []
    for n in names:
        n = str(n).strip()
        if n and n not in out:
            out.append(n)
    return out


def package_steps(group: PackageGroup) -> List[Step]:
    """One non-fatal step per package: skip when installed, else install.

    A failing package never stops the rest of the group; the executor
    records it by name.
    """

    steps: List[Step] = []
    for pkg in _dedup(group.packages):

        def _installed(ctx: StageContext, pkg: str = pkg) -> bool:
            return ctx.system.package_installed(pkg)

        def _install(ctx: StageContext, pkg: str = pkg) -> None:
            ctx.system.install_package(pkg, helper=group.helper)

        steps.append(
            Step(
                step_id=f"{group.name}:{pkg}",
                description=f"Install {pkg}",
                check=_installed,
                action=_install,
                fatal=False,
                subject=pkg,
            )
        )
    return steps
