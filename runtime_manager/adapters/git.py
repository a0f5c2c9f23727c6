# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Git desired-state store backed by the git binary."""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from urllib.parse import parse_qs, quote, urlparse

import sh
import yaml

from runtime_manager import logger
from runtime_manager.errors import GitAuthError, GitMergeError, NotFoundError, RuntimeManagerError

_AUTH_MARKERS = ("authentication failed", "could not read username", "permission denied", "403")
_MERGE_MARKERS = ("non-fast-forward", "fetch first", "[rejected]")
_MISSING_MARKERS = ("repository not found", "not found", "does not exist")


def _stderr(err: sh.ErrorReturnCode) -> str:
    return err.stderr.decode(errors="replace") if isinstance(err.stderr, bytes) else str(err.stderr)


def _classify(err: sh.ErrorReturnCode, action: str) -> RuntimeManagerError:
    message = _stderr(err).strip()
    lowered = message.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return GitAuthError(f"git {action} failed, check your git token: {message}")
    if any(marker in lowered for marker in _MERGE_MARKERS):
        return GitMergeError(f"git {action} was rejected, the remote has new commits: {message}")
    if any(marker in lowered for marker in _MISSING_MARKERS):
        return NotFoundError(f"git {action} failed: {message}")
    return RuntimeManagerError(f"git {action} failed: {message}")


class GitCliRepository:
    """GitRepository implementation working on a local clone.

    The repo URL may carry the branch as ``?ref=<branch>``.

    Args:
        repo: Installation repository URL.
        token: Git token used for HTTPS authentication.
        workdir: Directory to clone into, or None for a temporary directory.
    """

    def __init__(self, repo: str, token: str = "", workdir: Path | None = None) -> None:
        self._repo = repo
        self._token = token
        self._workdir = workdir
        self._root: Path | None = None
        parsed = urlparse(repo)
        self._clone_url = parsed._replace(query="", fragment="").geturl()
        self._branch = parse_qs(parsed.query).get("ref", [""])[0]

    @property
    def url(self) -> str:
        return self._repo

    @property
    def host(self) -> str:
        return (urlparse(self._clone_url).hostname or "").lower()

    @property
    def root(self) -> Path:
        if self._root is None:
            raise RuntimeManagerError("repository has not been cloned yet")
        return self._root

    def _auth_url(self) -> str:
        parsed = urlparse(self._clone_url)
        if not self._token or parsed.scheme not in ("http", "https"):
            return self._clone_url
        netloc = f"git:{quote(self._token, safe='')}@{parsed.hostname}"
        if parsed.port:
            netloc += f":{parsed.port}"
        return parsed._replace(netloc=netloc).geturl()

    def _git(self, *args: str, action: str) -> str:
        try:
            return str(sh.git(*args, _cwd=str(self.root)))
        except sh.ErrorReturnCode as err:
            raise _classify(err, action) from err

    def clone(self, create_if_missing: bool = True) -> None:
        """Clone the repo once; later calls are no-ops.

        Raises:
            NotFoundError: The repo does not exist and ``create_if_missing`` is False.
            GitAuthError: The token was rejected.
        """
        if self._root is not None:
            return
        target = self._workdir or Path(tempfile.mkdtemp(prefix="runtime-repo-"))
        args = ["clone", "--depth", "1"]
        if self._branch:
            args += ["--branch", self._branch]
        try:
            sh.git(*args, self._auth_url(), str(target))
        except sh.ErrorReturnCode as err:
            classified = _classify(err, "clone")
            if not isinstance(classified, NotFoundError) or not create_if_missing:
                raise classified from err
            logger.info("Repository %s not found, initializing a new one", self._clone_url)
            target.mkdir(parents=True, exist_ok=True)
            sh.git("init", _cwd=str(target))
            sh.git("remote", "add", "origin", self._auth_url(), _cwd=str(target))
            if self._branch:
                sh.git("checkout", "-b", self._branch, _cwd=str(target))
        self._root = target

    def exists(self, path: str) -> bool:
        return (self.root / path).exists()

    def list_dir(self, path: str) -> list[str]:
        directory = self.root / path
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.iterdir())

    def read_yaml(self, path: str) -> list[dict]:
        file_path = self.root / path
        if not file_path.is_file():
            raise NotFoundError(f"'{path}' does not exist in {self._clone_url}")
        return [doc for doc in yaml.safe_load_all(file_path.read_text()) if doc is not None]

    def write_yaml(self, path: str, documents: list[dict]) -> None:
        file_path = self.root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(yaml.safe_dump_all(documents, sort_keys=False))

    def remove(self, path: str) -> None:
        target = self.root / path
        if target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()

    def commit_and_push(self, message: str) -> None:
        """Commit everything in the working tree and push it.

        Raises:
            GitAuthError: The remote rejected the credentials.
            GitMergeError: The remote moved ahead.
        """
        self._git("add", "-A", action="add")
        if not self._git("status", "--porcelain", action="status").strip():
            logger.debug("Nothing to commit for '%s'", message)
            return
        self._git("-c", "user.name=runtime-manager", "-c", "user.email=runtime-manager@localhost",
                  "commit", "-m", message, action="commit")
        self._git("push", "origin", "HEAD", action="push")
        logger.info("Pushed '%s' to %s", message, self._clone_url)
