"""Factory for building a PossePublisher from a resolved NoatConfig.

Keeps repository discovery and client construction out of the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from noat.bluesky import BlueskyClient
from noat.config import NoatConfig
from noat.git import GitRepo
from noat.posse import PossePublisher


def build_publisher(
    cfg: NoatConfig,
    env: dict[str, str],
    cwd: Path,
    report: Callable[[str], None] | None = None,
    client: BlueskyClient | None = None,
) -> PossePublisher:
    """Build a PossePublisher for the repository containing ``cwd``.

    Args:
        cfg: Resolved configuration.
        env: Flat environment mapping; the app password is read from it.
        cwd: Any directory inside the posts repository.
        report: Progress callback. Defaults to printing ``[noat]`` lines.
        client: Optional pre-built client. If None, one is constructed
            for cfg.pds_url.

    Returns:
        A fully wired PossePublisher.
    """
    repo = GitRepo.discover(cwd)
    return PossePublisher(
        config=cfg,
        env=env,
        repo=repo,
        client=client or BlueskyClient(cfg.pds_url),
        report=report,
    )
