from __future__ import annotations


class ProvisionError(RuntimeError):
    """A condition that stops the current stage."""


class CommandError(ProvisionError):
    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(argv)}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class IdentityError(ProvisionError):
    pass


class StepFailed(ProvisionError):
    def __init__(self, step_id: str, cause: BaseException) -> None:
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"Step '{step_id}' failed: {cause}")


class OperatorCancelled(Exception):
    """The operator declined a confirmation prompt."""
