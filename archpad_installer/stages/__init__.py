from .aur import AurStage
from .base import Stage
from .install import InstallStage
from .post_install import PostInstallStage

STAGES = {
    InstallStage.stage_id: InstallStage,
    PostInstallStage.stage_id: PostInstallStage,
    AurStage.stage_id: AurStage,
}

__all__ = [
    "Stage",
    "InstallStage",
    "PostInstallStage",
    "AurStage",
    "STAGES",
]
