"""Working-directory resolution with clone-on-demand.

A new session may name a git repository; it is cloned once into the
base working directory and reused on later requests.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)


def extract_repo_name(repo: str) -> str:
    """Return the directory name ``git clone`` would create for ``repo``.

    >>> extract_repo_name("https://github.com/user/repo.git")
    'repo'
    >>> extract_repo_name("git@github.com:user/repo.git")
    'repo'
    """
    without_git = re.sub(r"\.git$", "", repo.strip().rstrip("/"))
    name = re.split(r"[/:]", without_git)[-1]
    return name or "cloned_repo"


async def clone_repo(repo: str, target_dir: str | Path) -> None:
    """Run ``git clone repo`` inside ``target_dir``.

    Raises:
        GitError: git is missing or the clone failed.
    """
    logger.info("Cloning repository %s into %s", repo, target_dir)
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", "clone", repo,
            cwd=str(target_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise GitError(f"Failed to run git clone for {repo}: {e}") from e

    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise GitError(
            f"Failed to clone repository: {repo}",
            stderr=stderr.decode("utf-8", errors="replace"),
        )
    logger.info("Cloned repository %s", repo)


async def resolve_target_directory(
    session_id: str | None,
    repo: str | None,
    working_dir: str | Path,
) -> str:
    """Pick the directory the CLI runs in.

    A resumed session always runs in ``working_dir``, as does a request
    without a repository. Otherwise the repository is cloned into
    ``working_dir`` (unless already present) and its checkout is used.
    """
    if session_id or not repo:
        return str(working_dir)

    repo_path = Path(working_dir) / extract_repo_name(repo)
    if repo_path.exists():
        logger.info("Repository already present, skipping clone: %s", repo_path)
    else:
        await clone_repo(repo, working_dir)
    return str(repo_path)


def is_git_repo(directory: str | Path) -> bool:
    return (Path(directory) / ".git").exists()


async def get_repo_url(directory: str | Path) -> str | None:
    """Return ``remote.origin.url`` of a checkout, or None."""
    if not is_git_repo(directory):
        return None
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", "config", "--get", "remote.origin.url",
            cwd=str(directory),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError:
        return None
    stdout, _ = await proc.communicate()
    url = stdout.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0 or not url:
        return None
    return url


class GitError(Exception):
    """Raised when a git operation fails."""

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr
