import pytest
from rich.console import Console

from archpad_installer import ui
from archpad_installer.errors import ProvisionError
from archpad_installer.pipeline import RunReport
from archpad_installer.stages import AurStage

from .conftest import FakeSystem


@pytest.fixture
def recorded(monkeypatch):
    console = Console(theme=ui.THEME, record=True, width=160, force_terminal=False)
    monkeypatch.setattr(ui, "console", console)
    return console


def test_summary_names_failed_packages(recorded, make_ctx):
    system = FakeSystem(euid=1000, users={"gyarepyon": 1000}, commands={"yay"})
    system.fail_packages = {"discord", "libastal-4-git"}
    report = AurStage().run(make_ctx(system))

    ui.render_summary(report)

    out = recorded.export_text()
    assert "Failed: discord, libastal-4-git" in out
    assert "2 failed" in out
    assert "1. " in out


def test_summary_lists_declined_groups(recorded):
    ui.render_summary(RunReport("aur", declined=["AGS"]))

    out = recorded.export_text()
    assert "AGS" in out
    assert "declined" in out
    assert "Failed:" not in out


def test_closed_stdin_is_reported_not_raised(recorded, monkeypatch):
    def no_tty(*args, **kwargs):
        raise EOFError

    monkeypatch.setattr(ui.Confirm, "ask", no_tty)

    with pytest.raises(ProvisionError, match="--yes"):
        ui.confirm("Continue with installation?")


def test_assume_yes_never_prompts(monkeypatch):
    monkeypatch.setattr(ui.Confirm, "ask", lambda *a, **k: pytest.fail("prompted"))
    assert ui.confirm("Install AGS packages?", assume_yes=True)
