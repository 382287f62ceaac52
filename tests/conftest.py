"""Shared fixtures: throwaway git repositories holding posts."""

import shutil
import subprocess
from pathlib import Path

import pytest

from noat.config import NoatConfig
from noat.git import GitRepo


def run_git(root: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=root, check=True, capture_output=True, text=True,
    )
    return result.stdout


@pytest.fixture
def repo_dir(tmp_path):
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    root = tmp_path / "site"
    root.mkdir()
    run_git(root, "init", "-q")
    run_git(root, "config", "user.email", "author@example.com")
    run_git(root, "config", "user.name", "Post Author")
    run_git(root, "config", "commit.gpgsign", "false")
    return root


@pytest.fixture
def commit(repo_dir):
    """Write files (str or bytes) into the repo and commit them."""

    def _commit(files, message="Add posts"):
        for rel, content in files.items():
            path = repo_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            data = content if isinstance(content, bytes) else content.encode("utf-8")
            path.write_bytes(data)
        run_git(repo_dir, "add", "-A")
        run_git(repo_dir, "commit", "-q", "-m", message)

    return _commit


@pytest.fixture
def repo(repo_dir):
    return GitRepo(repo_dir)


@pytest.fixture
def config(repo_dir):
    return NoatConfig(
        handle="abc.bsky.social",
        base_url="https://abc.com/blog",
        posts_dir=repo_dir / "posts",
    )
