import pytest

from archpad_installer.errors import ProvisionError
from archpad_installer.lib.mounts import discover_target_root, find_target_root

from .conftest import FakeSystem

CANDIDATES = ["/mnt/archinstall", "/mnt"]


def _discover(system, fallback_device="/dev/nvme0n1p3"):
    return discover_target_root(
        system,
        candidates=CANDIDATES,
        marker="root",
        fallback_device=fallback_device,
        fallback_mountpoint="/mnt",
    )


def test_candidates_checked_in_priority_order():
    system = FakeSystem(dirs={"/mnt/root", "/mnt/archinstall/root"})
    assert find_target_root(system, CANDIDATES, "root") == "/mnt/archinstall"


def test_second_candidate_used_without_mounting():
    system = FakeSystem(dirs={"/mnt/root"})
    assert _discover(system) == "/mnt"
    assert system.actions == []


def test_fallback_device_is_mounted_when_nothing_found():
    system = FakeSystem()
    system.mount_provides["/dev/nvme0n1p3"] = {"/mnt/root"}

    assert _discover(system) == "/mnt"
    assert system.actions == [("mount", "/dev/nvme0n1p3", "/mnt")]


def test_failed_fallback_mount_aborts():
    system = FakeSystem()
    system.fail_mount = True

    with pytest.raises(ProvisionError, match="manually"):
        _discover(system)


def test_fallback_without_marker_aborts():
    system = FakeSystem()
    with pytest.raises(ProvisionError, match="no root/ directory"):
        _discover(system)


def test_no_fallback_device_configured():
    with pytest.raises(ProvisionError):
        _discover(FakeSystem(), fallback_device=None)
