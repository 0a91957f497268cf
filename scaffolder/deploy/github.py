#  Project Scaffolder - GitHub Source Host
#
#  Repository lookup/creation over the GitHub REST API and a one-commit
#  push of a generated file set. The push works in a fresh temporary
#  directory (removed on every exit path) and shells out to git via
#  subprocess wrapped in asyncio.to_thread().
#
#  Depends on: config.py, exceptions.py
#  Used by:    deploy/pipeline.py

import asyncio
import logging
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from scaffolder.config import (
    GIT_COMMAND_TIMEOUT,
    GIT_COMMIT_EMAIL,
    GIT_COMMIT_MESSAGE,
    GIT_COMMIT_NAME,
    GIT_DEFAULT_BRANCH,
    GITHUB_API_URL,
    GITHUB_HOST,
    GITHUB_TOKEN_ENV,
    get_credential,
)
from scaffolder.exceptions import GitError, GitHubError, ProviderNotConfiguredError

logger = logging.getLogger("scaffolder.github")

_TEMP_PREFIX = "project-scaffolder-"


@dataclass
class PushResult:
    commit_sha: str
    url: str


class GitHubService:
    """GitHub repository management and file push.

    One instance per pipeline run; the token comes from the constructor or
    GITHUB_TOKEN.
    """

    def __init__(
        self,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        api_url: str = GITHUB_API_URL,
        work_root: str | Path | None = None,
    ):
        self._token = token or get_credential(GITHUB_TOKEN_ENV)
        if not self._token:
            raise ProviderNotConfiguredError("GitHub token not configured")
        self._http_client = http_client
        self._api_url = api_url.rstrip("/")
        self._work_root = str(work_root) if work_root else None

    # ------------------------------------------------------------------
    # REST helpers
    # ------------------------------------------------------------------

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = self._http_client or httpx.AsyncClient(timeout=30.0)
        try:
            return await client.request(
                method, f"{self._api_url}{path}", headers=self._headers(), **kwargs,
            )
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request failed: {e}") from e
        finally:
            if not self._http_client:
                await client.aclose()

    @staticmethod
    def _raise_for_status(resp: httpx.Response):
        if resp.status_code >= 400:
            raise GitHubError(f"GitHub API error: {resp.status_code} - {resp.text}")

    async def get_authenticated_user(self) -> dict:
        resp = await self._request("GET", "/user")
        self._raise_for_status(resp)
        return resp.json()

    async def get_repository(self, owner: str, repo: str) -> dict | None:
        resp = await self._request("GET", f"/repos/{owner}/{repo}")
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp)
        return resp.json()

    async def repo_exists(self, owner: str, repo: str) -> bool:
        return await self.get_repository(owner, repo) is not None

    async def create_repository(
        self,
        name: str,
        description: str = "",
        is_private: bool = True,
        auto_init: bool = False,
    ) -> dict:
        resp = await self._request("POST", "/user/repos", json={
            "name": name,
            "description": description,
            "private": is_private,
            "auto_init": auto_init,
        })
        self._raise_for_status(resp)
        data = resp.json()
        logger.info("Created GitHub repository %s", data.get("full_name", name))
        return data

    # ------------------------------------------------------------------
    # Git push (sync — called via to_thread)
    # ------------------------------------------------------------------

    def remote_url(self, owner: str, repo: str) -> str:
        return f"https://{self._token}@{GITHUB_HOST}/{owner}/{repo}.git"

    def _redact(self, text: str) -> str:
        return text.replace(self._token, "***")

    def _run_git_sync(self, *args: str, cwd: str | Path) -> str:
        """Run a git command synchronously. Raises GitError on failure."""
        cmd = ["git"] + list(args)
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=GIT_COMMAND_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"Git command timed out after {GIT_COMMAND_TIMEOUT}s: git {args[0]}")
        except OSError as e:
            raise GitError(f"Failed to run git: {e}")

        if result.returncode != 0:
            stderr = self._redact(result.stderr.strip())
            raise GitError(f"git {args[0]} failed (rc={result.returncode}): {stderr}")

        return result.stdout.strip()

    @staticmethod
    def _write_files(workdir: Path, files: list[dict]):
        root = workdir.resolve()
        for f in files:
            target = (root / f["path"]).resolve()
            if not target.is_relative_to(root):
                raise GitError(f"Refusing to write outside the working copy: {f['path']}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(f["content"], encoding="utf-8")

    def _push_sync(
        self, owner: str, repo: str, files: list[dict], commit_message: str, branch: str,
    ) -> str:
        with tempfile.TemporaryDirectory(prefix=_TEMP_PREFIX, dir=self._work_root) as tmp:
            workdir = Path(tmp)
            self._write_files(workdir, files)

            git = self._run_git_sync
            git("init", cwd=workdir)
            git("symbolic-ref", "HEAD", f"refs/heads/{branch}", cwd=workdir)
            git("config", "user.email", GIT_COMMIT_EMAIL, cwd=workdir)
            git("config", "user.name", GIT_COMMIT_NAME, cwd=workdir)
            git("config", "commit.gpgsign", "false", cwd=workdir)
            git("add", "-A", cwd=workdir)
            git("commit", "--allow-empty", "-m", commit_message, cwd=workdir)
            git("remote", "add", "origin", self.remote_url(owner, repo), cwd=workdir)

            try:
                git("push", "--set-upstream", "origin", branch, cwd=workdir)
            except GitError as e:
                logger.warning("Push to %s/%s rejected, retrying with --force: %s", owner, repo, e)
                git("push", "--set-upstream", "--force", "origin", branch, cwd=workdir)

            return git("rev-parse", "HEAD", cwd=workdir)

    async def push_files(
        self,
        owner: str,
        repo: str,
        files: list[dict],
        commit_message: str = GIT_COMMIT_MESSAGE,
        branch: str = GIT_DEFAULT_BRANCH,
    ) -> PushResult:
        """Push `files` ({path, content} dicts) as one commit on `branch`."""
        sha = await asyncio.to_thread(self._push_sync, owner, repo, files, commit_message, branch)
        logger.info("Pushed %d file(s) to %s/%s@%s", len(files), owner, repo, sha[:8])
        return PushResult(commit_sha=sha, url=f"https://{GITHUB_HOST}/{owner}/{repo}")

    # ------------------------------------------------------------------
    # Combined flow
    # ------------------------------------------------------------------

    async def create_and_push(
        self,
        repo_name: str,
        files: list[dict],
        description: str = "",
        is_private: bool = True,
    ) -> PushResult:
        """Create the repository if missing, then push the files."""
        user = await self.get_authenticated_user()
        owner = user["login"]
        if not await self.repo_exists(owner, repo_name):
            await self.create_repository(repo_name, description, is_private)
        return await self.push_files(owner, repo_name, files)
