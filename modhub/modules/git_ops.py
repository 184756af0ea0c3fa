"""
Git Operations for Module Acquisition.

This module provides the git operations behind ``git+<repo>[@tag]``
locations.

Key features:
- Shallow clone of a repository at an optional tag
- Location parsing for git+ URLs
"""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_PREFIX = "git+"


class GitError(Exception):
    """Base exception for git-related errors."""

    pass


def is_git_location(location: str) -> bool:
    return location.startswith(GIT_PREFIX)


def split_git_location(location: str) -> tuple[str, str | None]:
    """
    Split ``git+<repo>[@tag]`` into repository URL and tag.

    The tag separator is the last ``@`` after the last ``/`` so that
    ``git+ssh://git@host/repo.git@v1.0.0`` keeps its user part.
    """
    repo = location[len(GIT_PREFIX):] if is_git_location(location) else location
    head, sep, tail = repo.rpartition("/")
    if "@" in tail:
        tail, tag = tail.rsplit("@", 1)
        return f"{head}{sep}{tail}", tag or None
    return repo, None


def _run_git(args: list[str], cwd: Path | None = None) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise GitError("git command not found. Please install git.") from e
    except OSError as e:
        raise GitError(f"Failed to run git {args[0]}: {e}") from e

    if result.returncode != 0:
        raise GitError(f"git {args[0]} failed: {(result.stderr or result.stdout).strip()}")
    return result.stdout


def clone_module(repo_url: str, target_dir: Path, tag: str | None = None) -> None:
    """
    Clone a module repository.

    Args:
        repo_url: Git repository URL
        target_dir: Target directory for clone
        tag: Optional tag to checkout (uses --branch for shallow clone)

    Raises:
        GitError: If clone operation fails
    """
    target_dir.parent.mkdir(parents=True, exist_ok=True)

    cmd = ["clone", "--depth", "1"]
    if tag:
        cmd.extend(["--branch", tag])
    cmd.extend([repo_url, str(target_dir)])

    logger.debug("Cloning %s (tag=%s) into %s", repo_url, tag, target_dir)
    _run_git(cmd)

