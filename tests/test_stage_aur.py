import pytest

from archpad_installer.errors import IdentityError, StepFailed
from archpad_installer.main import run_stage

from .conftest import FakeSystem

USER = {"gyarepyon": 1000}


def _user_session(**kwargs):
    return FakeSystem(euid=1000, users=USER, **kwargs)


def _installs(system):
    return [a[1] for a in system.actions if a[0] == "install"]


def test_helper_is_built_from_a_fresh_clone():
    system = _user_session()

    run_stage("aur", system=system, confirm=lambda q: False)

    runs = [a[1] for a in system.actions if a[0] == "run"]
    assert runs[0][:3] == ("git", "clone", "https://aur.archlinux.org/yay-bin.git")
    assert runs[0][3].endswith("/yay-bin")
    assert runs[1] == ("makepkg", "-si", "--noconfirm")
    assert system.command_exists("yay")


def test_helper_already_present_is_not_rebuilt():
    system = _user_session(commands={"yay"})

    report = run_stage("aur", system=system, confirm=lambda q: False)

    assert not any(a[1][0] == "git" for a in system.actions if a[0] == "run")
    assert "install_helper" in report.satisfied


def test_groups_use_their_own_installer():
    system = _user_session(commands={"yay"})

    run_stage("aur", system=system, confirm=lambda q: True)

    by_pkg = {a[1]: a[2] for a in system.actions if a[0] == "install"}
    assert by_pkg["gtk3"] == "pacman"
    assert by_pkg["discord"] == "yay"
    assert by_pkg["ags-hyprpanel-git"] == "yay"


def test_failed_optional_package_is_reported_and_rest_continue():
    system = _user_session(commands={"yay"})
    system.fail_packages = {"libastal-4-git"}

    report = run_stage("aur", system=system, confirm=lambda q: True)

    installs = _installs(system)
    assert installs.index("libastal-4-git") < installs.index("ags-hyprpanel-git")
    assert "appmenu-glib-translator-git" in system.packages
    assert report.failed == ["libastal-4-git"]


def test_declined_optional_group_installs_nothing_from_it():
    system = _user_session(commands={"yay"})
    questions = []

    report = run_stage("aur", system=system, confirm=lambda q: questions.append(q) or False)

    assert questions == ["Install AGS packages?"]
    assert report.declined == ["AGS"]
    assert "aylurs-gtk-shell-git" not in _installs(system)
    assert "walker-bin" in system.packages


def test_already_installed_packages_count_as_success():
    system = _user_session(commands={"yay"}, packages={"discord", "gtk3"})

    report = run_stage("aur", system=system, confirm=lambda q: False)

    assert "discord" not in _installs(system)
    assert {"discord", "gtk3"} <= set(report.satisfied)


def test_cleanup_failures_are_soft():
    system = _user_session(commands={"yay"})
    system.fail_commands["yay"] = 1
    system.fail_commands["sudo"] = 1

    report = run_stage("aur", system=system, confirm=lambda q: False)

    assert report.failed == ["clean_helper_cache", "clean_pacman_cache"]
    assert ("run", ("sudo", "pacman", "-Sc", "--noconfirm")) in system.actions


def test_helper_build_failure_is_fatal():
    system = _user_session()
    system.fail_commands["makepkg"] = 1

    with pytest.raises(StepFailed) as exc:
        run_stage("aur", system=system, confirm=lambda q: False)

    assert exc.value.step_id == "install_helper"
    assert _installs(system) == []


def test_root_cannot_run_the_aur_stage():
    system = FakeSystem(euid=0, users=USER)

    with pytest.raises(IdentityError):
        run_stage("aur", system=system, confirm=lambda q: True)

    assert system.actions == []


def test_offline_is_fatal_before_any_action():
    system = _user_session(online=False)

    with pytest.raises(Exception, match="aur.archlinux.org"):
        run_stage("aur", system=system, confirm=lambda q: True)

    assert system.actions == []
