from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str = "defaults"
    dump: int = 0
    passno: int = 0

    def render(self) -> str:
        return f"{self.spec}\t{self.mountpoint}\t{self.fstype}\t{self.options}\t{self.dump}\t{self.passno}"


def has_mountpoint(text: str, mountpoint: str) -> bool:
    """True if an active (uncommented) fstab line mounts onto mountpoint."""

    for line in text.splitlines():
        fields = line.split()
        if not fields or fields[0].startswith("#"):
            continue
        if len(fields) >= 2 and fields[1].rstrip("/") == mountpoint.rstrip("/"):
            return True
    return False


def render_block(entry: FstabEntry, *, comment: str | None = None) -> str:
    """Render an entry as a block suitable for appending to an existing fstab."""

    lines = [""]
    if comment:
        lines.append(f"# {comment}")
    lines.append(entry.render())
    return "\n".join(lines) + "\n"

