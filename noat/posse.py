"""POSSE publish run: Publish (on your) Own Site, Syndicate Elsewhere.

Posts are authored as markdown in a git repository. A run publishes every
committed post that has no ``AT_URL`` yet, writes the resulting Bluesky
URL back into the post's frontmatter, and records all of those edits in a
single numbered commit. The marker field is the only publish state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from noat import frontmatter
from noat.bluesky import BlueskyClient, to_post_url
from noat.config import NoatConfig, resolve_string
from noat.drafts import MARKER_FIELD, Draft, DraftBuilder
from noat.errors import ConfigError, NoatError, PublishError
from noat.git import GitRepo, commit_message

logger = logging.getLogger(__name__)


@dataclass
class PublishedPost:
    path: str
    uri: str
    cid: str
    url: str


@dataclass
class PublishSummary:
    dry_run: bool
    total_posts: int = 0
    skipped_posts: int = 0
    queued_posts: int = 0
    published: list[PublishedPost] = field(default_factory=list)
    commit_message: str | None = None

    @property
    def published_posts(self) -> int:
        return len(self.published)


def _print_report(message: str) -> None:
    print(f"[noat] {message}")


class PossePublisher:
    """Publishes unmarked posts from a repository to one Bluesky account.

    Drafts are processed strictly in path order. Each success marks its file
    immediately; one commit at the end covers every marked file.
    """

    def __init__(
        self,
        config: NoatConfig,
        env: dict[str, str],
        repo: GitRepo,
        client: BlueskyClient | None = None,
        report: Callable[[str], None] | None = None,
    ) -> None:
        self.config = config
        self.env = env
        self.repo = repo
        self.client = client or BlueskyClient(config.pds_url)
        self.report = report or _print_report

    def build_drafts(self) -> tuple[list[str], list[Draft], int]:
        """List HEAD posts and build drafts; returns (paths, drafts, skipped count)."""
        posts_spec = self.repo.relative_spec(self.config.posts_dir)
        paths = self.repo.list_markdown_files(posts_spec)
        drafts, skipped = DraftBuilder(self.repo, self.config, posts_spec).build(paths)
        logger.debug("Found %d post(s), %d already published", len(paths), len(skipped))
        return paths, drafts, len(skipped)

    def run(self, dry_run: bool = False) -> PublishSummary:
        paths, drafts, skipped = self.build_drafts()
        summary = PublishSummary(
            dry_run=dry_run,
            total_posts=len(paths),
            skipped_posts=skipped,
            queued_posts=len(drafts),
        )

        if not drafts:
            self.report("no new posts found to publish")
            return summary

        if dry_run:
            for draft in drafts:
                self.report(f"dry-run would publish {draft.path}")
                logger.debug("Draft text for %s:\n%s", draft.path, draft.text)
            return summary

        self.repo.assert_clean()
        password = resolve_string(self.env.get(self.config.password_env_var))
        if password is None:
            raise ConfigError(
                f"Missing password. Set {self.config.password_env_var} in .env or environment."
            )

        session = self.client.create_session(self.config.handle, password)
        changed: list[str] = []

        try:
            for draft in drafts:
                result = self.client.publish(session, draft)
                url = to_post_url(self.config.handle, result.uri)
                self._write_marker(draft, url)
                changed.append(draft.path)
                summary.published.append(
                    PublishedPost(path=draft.path, uri=result.uri, cid=result.cid, url=url)
                )
                logger.info("Published %s as %s", draft.path, result.uri)
                self.report(f"published {draft.path} -> {url}")
        except Exception as exc:
            # Posts already live must not stay as uncommitted edits.
            if changed:
                try:
                    summary.commit_message = self._commit(changed)
                except NoatError as commit_exc:
                    logger.error("Recovery commit failed for %s: %s", ", ".join(changed), commit_exc)
                    raise PublishError(
                        f"{exc}. Committing {len(changed)} already published post(s) "
                        f"({', '.join(changed)}) also failed: {commit_exc}"
                    ) from exc
                self.report(
                    f"committed {len(changed)} published post(s) before stopping: "
                    f"{summary.commit_message}"
                )
            raise

        if not changed:
            raise PublishError(f"Attempted {len(drafts)} publish(es) but no post was marked")

        summary.commit_message = self._commit(changed)
        self.report(f"committed {len(changed)} post(s): {summary.commit_message}")
        return summary

    def _write_marker(self, draft: Draft, url: str) -> None:
        updated = frontmatter.upsert_field(draft.post.source, MARKER_FIELD, url)
        (self.repo.root / draft.path).write_bytes(updated.encode("utf-8"))

    def _commit(self, paths: list[str]) -> str:
        message = commit_message(self.repo.next_sequence_number())
        self.repo.commit(paths, message)
        return message
