"""Read-only and committing access to the posts repository.

Publishing only ever looks at what is in HEAD: file lists and contents
come from the object store, never from the working tree, so uncommitted
edits cannot leak into a post.
"""

from __future__ import annotations

import logging
import posixpath
import re
import subprocess
from pathlib import Path

from noat.errors import GitError, PreconditionError

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = (".md", ".markdown")
COMMIT_MESSAGE_PREFIX = "Publish to Bluesky #"

_SEQUENCE_RE = re.compile(rf"^{re.escape(COMMIT_MESSAGE_PREFIX)}(\d+)\b")


def commit_message(sequence: int) -> str:
    return f"{COMMIT_MESSAGE_PREFIX}{sequence}"


class GitRepo:
    """Thin wrapper around the ``git`` executable for one repository."""

    def __init__(self, root: Path, git_bin: str = "git") -> None:
        self.root = Path(root)
        self._git_bin = git_bin

    @classmethod
    def discover(cls, cwd: Path, git_bin: str = "git") -> GitRepo:
        """Find the repository that contains ``cwd``."""
        output = _run(git_bin, Path(cwd), ["rev-parse", "--show-toplevel"])
        return cls(Path(output.decode("utf-8").strip()), git_bin=git_bin)

    def run(self, args: list[str]) -> bytes:
        return _run(self._git_bin, self.root, args)

    def run_text(self, args: list[str]) -> str:
        return self.run(args).decode("utf-8")

    def relative_spec(self, directory: Path) -> str:
        """Express an absolute directory as a repo-relative pathspec.

        Raises:
            PreconditionError: If the directory lies outside the repository.
        """
        try:
            rel = Path(directory).resolve().relative_to(self.root.resolve())
        except ValueError:
            raise PreconditionError(
                f'Configured posts directory must be inside the git repo. Received "{directory}"'
            ) from None
        return rel.as_posix() or "."

    def list_markdown_files(self, subtree: str) -> list[str]:
        """Tracked markdown files under ``subtree`` at HEAD, sorted."""
        output = self.run_text(["ls-tree", "-r", "-z", "--name-only", "HEAD", "--", subtree])
        paths = [path for path in output.split("\0") if path.strip()]
        return sorted(
            path for path in paths
            if posixpath.splitext(path)[1].lower() in MARKDOWN_EXTENSIONS
        )

    def read_file_at_head(self, path: str) -> bytes:
        """File content exactly as committed in HEAD."""
        return self.run(["cat-file", "blob", f"HEAD:{path}"])

    def assert_clean(self) -> None:
        """Raise PreconditionError when anything is modified, staged or untracked."""
        status = self.run_text(["status", "--porcelain", "--untracked-files=all"])
        if status.strip():
            changed = [line[3:] for line in status.splitlines() if line.strip()]
            shown = ", ".join(changed[:5])
            if len(changed) > 5:
                shown += f", ... ({len(changed)} total)"
            raise PreconditionError(
                f"Working tree has uncommitted changes ({shown}). "
                "Commit or revert them before publishing."
            )

    def commit(self, paths: list[str], message: str) -> None:
        """Stage exactly ``paths`` and commit them with ``message``."""
        if not paths:
            raise GitError(["commit", "-m", message], "nothing to commit: no paths given")
        self.run(["add", "--", *paths])
        self.run(["commit", "-m", message, "--", *paths])
        logger.info("Committed %d file(s): %s", len(paths), message)

    def commit_subjects(self) -> list[str]:
        return self.run_text(["log", "--format=%s"]).splitlines()

    def next_sequence_number(self) -> int:
        """One more than the highest publish counter in history, or 1."""
        highest = 0
        for subject in self.commit_subjects():
            match = _SEQUENCE_RE.match(subject.strip())
            if match:
                highest = max(highest, int(match.group(1)))
        return highest + 1


def _run(git_bin: str, cwd: Path, args: list[str]) -> bytes:
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            [git_bin, *args],
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        raise GitError(args, str(exc)) from exc
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise GitError(args, stderr or f"exit status {result.returncode}")
    return result.stdout
