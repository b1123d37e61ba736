from __future__ import annotations

import argparse
import logging
from typing import Callable, Optional

from . import __version__, ui
from .config import load_config
from .errors import OperatorCancelled, ProvisionError, StepFailed
from .lib.identity import require_identity
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import RunReport, StageContext
from .stages import STAGES
from .system import LiveSystem, System

logger = logging.getLogger(__name__)


def run_stage(
    stage_id: str,
    *,
    config_path: Optional[str] = None,
    system: Optional[System] = None,
    dry_run: bool = False,
    assume_yes: bool = False,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    confirm: Optional[Callable[[str], bool]] = None,
) -> RunReport:
    """Run one stage: identity guard, preflight checks, steps, summary."""

    stage = STAGES[stage_id]()
    cfg = load_config(config_path)
    system = system or LiveSystem(dry_run=dry_run)

    # Nothing else may touch the machine before this passes.
    require_identity(system, stage.required_identity(cfg))

    ctx = StageContext(
        config=cfg,
        system=system,
        assume_yes=assume_yes,
        start_at=start_at,
        stop_after=stop_after,
        confirm=confirm,
    )

    ui.print_header(stage.title)
    stage.preflight(ctx)
    report = stage.run(ctx)
    if not report.started:
        ui.print_warning(f"Step '{start_at}' not found in stage {stage_id}; nothing ran")

    ui.render_summary(report)
    ui.print_success(f"{stage.title} complete!")
    return report


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="archpad", description="Provision an Arch Linux desktop in three stages.")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("stage", choices=list(STAGES), help="Stage to run")
    p.add_argument("--config", default=None, help="Provisioning profile (YAML); built-in defaults if omitted")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to the provisioning log")
    p.add_argument("--dry-run", action="store_true", help="Log mutations instead of performing them")
    p.add_argument("--yes", action="store_true", help="Answer yes to every prompt")
    p.add_argument("--verbose", action="store_true", help="Mirror the log on the console")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. sudoers)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")

    args = p.parse_args(argv)

    configure_logging(
        log_path=args.log,
        level=logging.DEBUG if args.verbose else logging.INFO,
        also_console=bool(args.verbose),
    )

    try:
        run_stage(
            args.stage,
            config_path=args.config,
            dry_run=bool(args.dry_run),
            assume_yes=bool(args.yes),
            start_at=args.start_at,
            stop_after=args.stop_after,
        )
    except OperatorCancelled as e:
        ui.print_warning(str(e) or "Cancelled")
        return 0
    except StepFailed as e:
        logger.error("Stage %s aborted at step %s", args.stage, e.step_id, exc_info=e.cause)
        ui.print_error(str(e))
        ui.print_note("Fix the problem and re-run the same stage; completed steps are skipped.")
        return 1
    except (ProvisionError, FileNotFoundError, ValueError) as e:
        logger.exception("Stage %s failed", args.stage)
        ui.print_error(str(e))
        return 1
    except KeyboardInterrupt:
        ui.print_warning("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
