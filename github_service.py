"""GitHub Contents API client that stores the member roster as one JSON file."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from typing import NamedTuple
from urllib.parse import quote

import httpx

from models import Settings
from storage import ShaStore
from utils import normalize_members

logger = logging.getLogger("gymhq.github")

BASE_URL = os.getenv("GYMHQ_GITHUB_API", "https://api.github.com")
COMMITTER = {"name": "GymHQ Bot", "email": "bot@gymhq.local"}


class GitHubError(Exception):
    """Base class for roster sync failures. ``status`` is the upstream HTTP status when there was one."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ConfigurationIncomplete(GitHubError):
    """Owner, repository or data path is missing; no request was made."""


class RemoteFetchFailed(GitHubError):
    pass


class CorruptRemoteData(GitHubError):
    """The remote file has content, but it is not a readable roster."""


class RemoteSaveFailed(GitHubError):
    pass


class ConflictingRemoteUpdate(GitHubError):
    """The file changed since it was last read; reload before saving again."""


class RemoteUnreachable(GitHubError):
    pass


class FetchResult(NamedTuple):
    members: list[dict]
    sha: str | None


def encode_content(members: list[dict]) -> str:
    text = json.dumps(members, indent=2, ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(content: str) -> str:
    raw = base64.b64decode("".join(content.split()), validate=True)
    return raw.decode("utf-8")


def error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        text = response.text
    else:
        text = data.get("message") if isinstance(data, dict) and data.get("message") else json.dumps(data)
    return f"{response.status_code} {response.reason_phrase}: {text}"


class GitHubService:
    """
    Read, write and verify the roster file. The sha of the last good read or
    write is kept per data path in ``sha_store`` and sent as the precondition
    of the next write, so a stale write is rejected instead of overwriting.
    """

    def __init__(self, sha_store: ShaStore, client: httpx.Client | None = None) -> None:
        self.sha_store = sha_store
        self.client = client or httpx.Client(base_url=BASE_URL, timeout=10)

    def close(self) -> None:
        self.client.close()

    @staticmethod
    def _headers(settings: Settings) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        return headers

    @staticmethod
    def _require_configured(settings: Settings, message: str = "GitHub settings incomplete") -> None:
        if not settings.is_configured:
            raise ConfigurationIncomplete(message)

    @staticmethod
    def _contents_url(settings: Settings) -> str:
        path = quote(settings.data_path.strip("/"))
        return f"/repos/{quote(settings.repo_owner, safe='')}/{quote(settings.repo_name, safe='')}/contents/{path}"

    def fetch_members(self, settings: Settings) -> FetchResult:
        self._require_configured(settings)
        try:
            resp = self.client.get(self._contents_url(settings), headers=self._headers(settings))
        except httpx.HTTPError as exc:
            raise RemoteFetchFailed(f"GitHub fetch failed: {exc}") from exc

        if resp.status_code == 404:
            logger.info("No roster at %s yet, starting empty", settings.data_path)
            self.sha_store.clear(settings.data_path)
            return FetchResult([], None)
        if not resp.is_success:
            msg = error_message(resp)
            logger.warning("GitHub fetch failed: %s", msg)
            raise RemoteFetchFailed(f"GitHub fetch failed: {msg}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteFetchFailed(f"GitHub fetch failed: unreadable response ({exc})", resp.status_code) from exc
        members = self._parse_roster(data, settings.data_path)
        sha = data.get("sha")
        if sha:
            self.sha_store.remember(settings.data_path, sha)
        else:
            self.sha_store.clear(settings.data_path)
        logger.info("Fetched %d members from %s", len(members), settings.data_path)
        return FetchResult(normalize_members(members), sha)

    @staticmethod
    def _parse_roster(data, path: str) -> list[dict]:
        if not isinstance(data, dict):
            raise CorruptRemoteData(f"{path} is a directory, not a roster file.")
        encoding = data.get("encoding", "base64")
        content = data.get("content") or ""
        if encoding != "base64":
            raise CorruptRemoteData(f"{path} is served with unsupported encoding '{encoding}'")
        try:
            decoded = decode_content(content)
        except (binascii.Error, ValueError) as exc:
            raise CorruptRemoteData(f"{path} content could not be decoded: {exc}") from exc
        if not decoded.strip():
            return []
        try:
            members = json.loads(decoded)
        except ValueError as exc:
            logger.error("Failed parsing %s: %s", path, exc)
            raise CorruptRemoteData("Invalid JSON in data file, fix the file on GitHub to continue.") from exc
        if not isinstance(members, list) or not all(isinstance(m, dict) for m in members):
            raise CorruptRemoteData(f"{path} must contain a JSON array of member objects.")
        return members

    def save_members(self, settings: Settings, members: list[dict], message: str = "Update members roster") -> dict:
        self._require_configured(settings)
        body = {
            "message": message,
            "content": encode_content(members),
            "committer": COMMITTER,
        }
        sha = self.sha_store.get(settings.data_path)
        if sha:
            body["sha"] = sha
        try:
            resp = self.client.put(self._contents_url(settings), headers=self._headers(settings), json=body)
        except httpx.HTTPError as exc:
            raise RemoteSaveFailed(f"GitHub save failed: {exc}") from exc

        if resp.status_code == 409:
            self.sha_store.clear(settings.data_path)
            msg = error_message(resp)
            logger.warning("Roster changed on GitHub since last read: %s", msg)
            raise ConflictingRemoteUpdate(
                f"GitHub save failed: {msg}. Reload the roster and apply your change again.", resp.status_code
            )
        if not resp.is_success:
            msg = error_message(resp)
            logger.warning("GitHub save failed: %s", msg)
            raise RemoteSaveFailed(f"GitHub save failed: {msg}", resp.status_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteSaveFailed(f"GitHub save failed: unreadable response ({exc})", resp.status_code) from exc
        if not isinstance(data, dict):
            raise RemoteSaveFailed("GitHub save failed: unexpected response body", resp.status_code)
        content = data.get("content")
        new_sha = content.get("sha") if isinstance(content, dict) else None
        if new_sha:
            self.sha_store.remember(settings.data_path, new_sha)
        else:
            self.sha_store.clear(settings.data_path)
        logger.info("Saved %d members to %s (%s)", len(members), settings.data_path, message)
        return data

    def test_connection(self, settings: Settings) -> dict:
        self._require_configured(settings, "Fill owner, repo, and path before testing connection.")
        url = f"/repos/{quote(settings.repo_owner, safe='')}/{quote(settings.repo_name, safe='')}"
        try:
            resp = self.client.get(url, headers=self._headers(settings))
        except httpx.HTTPError as exc:
            raise RemoteUnreachable(f"Cannot reach repository: {exc}") from exc
        if not resp.is_success:
            raise RemoteUnreachable(f"Cannot reach repository: {error_message(resp)}", resp.status_code)
        try:
            repo = resp.json()
        except ValueError as exc:
            raise RemoteUnreachable(f"Cannot reach repository: unreadable response ({exc})", resp.status_code) from exc
        if not isinstance(repo, dict):
            raise RemoteUnreachable("Cannot reach repository: unexpected response body", resp.status_code)
        return repo
