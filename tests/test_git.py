"""Tests for the git snapshot reader."""

import pytest

from noat.errors import GitError, PreconditionError
from noat.git import GitRepo, commit_message

from conftest import run_git


class TestGitRepo:
    def test_discover_from_subdirectory(self, repo_dir, commit):
        commit({"posts/a.md": "A\n"})
        found = GitRepo.discover(repo_dir / "posts")
        assert found.root.resolve() == repo_dir.resolve()

    def test_discover_outside_repo(self, tmp_path, repo_dir, monkeypatch):
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
        outside = tmp_path / "plain"
        outside.mkdir()
        with pytest.raises(GitError, match="rev-parse"):
            GitRepo.discover(outside)

    def test_list_markdown_files_sorted_and_filtered(self, repo, commit):
        commit({
            "posts/b.md": "B\n",
            "posts/a.markdown": "A\n",
            "posts/sub/c.MD": "C\n",
            "posts/img/pic.png": b"\x89PNG",
            "posts/notes.txt": "no\n",
            "other/d.md": "D\n",
        })
        assert repo.list_markdown_files("posts") == ["posts/a.markdown", "posts/b.md", "posts/sub/c.MD"]

    def test_list_ignores_uncommitted_files(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n"})
        (repo_dir / "posts" / "new.md").write_text("new\n")
        assert repo.list_markdown_files("posts") == ["posts/a.md"]

    def test_paths_with_spaces_and_unicode(self, repo, commit):
        commit({"posts/hello world.md": "A\n", "posts/café.md": "B\n"})
        assert repo.list_markdown_files("posts") == ["posts/café.md", "posts/hello world.md"]

    def test_read_file_at_head_ignores_working_tree(self, repo_dir, repo, commit):
        commit({"posts/a.md": "committed\n"})
        (repo_dir / "posts" / "a.md").write_text("edited\n")
        assert repo.read_file_at_head("posts/a.md") == b"committed\n"

    def test_read_missing_file(self, repo, commit):
        commit({"posts/a.md": "A\n"})
        with pytest.raises(GitError, match="cat-file"):
            repo.read_file_at_head("posts/missing.md")

    def test_relative_spec(self, repo_dir, repo):
        (repo_dir / "posts").mkdir()
        assert repo.relative_spec(repo_dir / "posts") == "posts"
        assert repo.relative_spec(repo_dir) == "."

    def test_relative_spec_outside_repo(self, tmp_path, repo):
        with pytest.raises(PreconditionError, match="inside the git repo"):
            repo.relative_spec(tmp_path / "elsewhere")


class TestCleanliness:
    def test_clean(self, repo, commit):
        commit({"posts/a.md": "A\n"})
        repo.assert_clean()

    def test_modified(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n"})
        (repo_dir / "posts" / "a.md").write_text("changed\n")
        with pytest.raises(PreconditionError, match="posts/a.md"):
            repo.assert_clean()

    def test_untracked(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n"})
        (repo_dir / "scratch.txt").write_text("x\n")
        with pytest.raises(PreconditionError, match="scratch.txt"):
            repo.assert_clean()

    def test_staged(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n"})
        (repo_dir / "posts" / "b.md").write_text("B\n")
        run_git(repo_dir, "add", "posts/b.md")
        with pytest.raises(PreconditionError):
            repo.assert_clean()


class TestCommit:
    def test_commit_stages_only_given_paths(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n", "posts/b.md": "B\n"})
        (repo_dir / "posts" / "a.md").write_text("A2\n")
        (repo_dir / "posts" / "b.md").write_text("B2\n")
        repo.commit(["posts/a.md"], commit_message(1))

        assert run_git(repo_dir, "log", "-1", "--format=%s").strip() == "Publish to Bluesky #1"
        changed = run_git(repo_dir, "show", "--name-only", "--format=", "HEAD").split()
        assert changed == ["posts/a.md"]
        assert run_git(repo_dir, "status", "--porcelain").strip() == "M posts/b.md"

    def test_commit_without_paths_fails(self, repo, commit):
        commit({"posts/a.md": "A\n"})
        with pytest.raises(GitError, match="nothing to commit"):
            repo.commit([], commit_message(1))


class TestSequenceNumber:
    def test_first_run(self, repo, commit):
        commit({"posts/a.md": "A\n"}, message="Initial commit")
        assert repo.next_sequence_number() == 1

    def test_max_plus_one_not_gap_fill(self, repo_dir, repo, commit):
        commit({"posts/a.md": "A\n"}, message="Initial commit")
        for n in (1, 2, 4):
            commit({"posts/a.md": f"A{n}\n"}, message=commit_message(n))
        commit({"posts/a.md": "later\n"}, message="Unrelated #99 change")
        assert repo.next_sequence_number() == 5

    def test_prefix_must_lead_subject(self, repo, commit):
        commit({"posts/a.md": "A\n"}, message="Revert \"Publish to Bluesky #7\"")
        assert repo.next_sequence_number() == 1
