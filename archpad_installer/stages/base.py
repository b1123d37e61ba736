from __future__ import annotations

import logging
from typing import List

from .. import ui
from ..config import ProvisionConfig
from ..errors import ProvisionError
from ..pipeline import RunReport, StageContext, Step, run_steps

logger = logging.getLogger(__name__)


class Stage:
    """One operator-invoked provisioning stage."""

    stage_id: str = ""
    title: str = ""

    def required_identity(self, cfg: ProvisionConfig) -> str:
        raise NotImplementedError

    def preflight(self, ctx: StageContext) -> None:
        """Fatal checks that run before any step."""

    def steps(self, ctx: StageContext) -> List[Step]:
        raise NotImplementedError

    def notes(self, ctx: StageContext) -> List[str]:
        return []

    def run(self, ctx: StageContext) -> RunReport:
        report = RunReport(stage=self.stage_id)
        run_steps(ctx, self.steps(ctx), report)
        for n in self.notes(ctx):
            report.note(n)
        return report


def require_network(ctx: StageContext, host: str) -> None:
    ui.print_header("Checking Network Connectivity")
    if not ctx.system.is_online(host):
        raise ProvisionError(f"No network connectivity to {host}. Please configure network and try again.")
    ui.print_success("Network connectivity verified")
