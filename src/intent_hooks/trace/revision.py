"""Resolve the workspace's current VCS revision."""

import re
import subprocess
from pathlib import Path
from typing import Optional, Union

from loguru import logger

_SHA = re.compile(r"^[0-9a-f]{40}(?:[0-9a-f]{24})?$")


def _read_packed_ref(git_dir: Path, ref: str) -> Optional[str]:
    packed = git_dir / "packed-refs"
    if not packed.is_file():
        return None
    for line in packed.read_text(encoding="utf-8").splitlines():
        if not line or line.startswith(("#", "^")):
            continue
        sha, _, name = line.partition(" ")
        if name.strip() == ref:
            return sha.strip()
    return None


def _read_head(root: Path) -> Optional[str]:
    git_dir = root / ".git"
    if git_dir.is_file():
        # Worktrees and submodules point at the real git dir
        pointer = git_dir.read_text(encoding="utf-8").strip()
        if pointer.startswith("gitdir:"):
            git_dir = (root / pointer[len("gitdir:"):].strip()).resolve()
    head = git_dir / "HEAD"
    if not head.is_file():
        return None

    content = head.read_text(encoding="utf-8").strip()
    if not content.startswith("ref:"):
        return content if _SHA.match(content) else None

    ref = content[len("ref:"):].strip()
    ref_file = git_dir / ref
    if ref_file.is_file():
        sha = ref_file.read_text(encoding="utf-8").strip()
        return sha if _SHA.match(sha) else None
    return _read_packed_ref(git_dir, ref)


def get_revision_id(workspace_root: Union[str, Path] = ".") -> Optional[str]:
    """
    Current commit sha of the workspace, or None outside a repository.

    Reads ``.git/HEAD`` directly (following refs and ``packed-refs``) and
    falls back to ``git rev-parse HEAD``.
    """
    root = Path(workspace_root)
    try:
        sha = _read_head(root)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read git HEAD under {root}: {e}")
        sha = None
    if sha:
        return sha

    try:
        completed = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"git rev-parse unavailable: {e}")
        return None
    sha = completed.stdout.strip()
    return sha if completed.returncode == 0 and _SHA.match(sha) else None
