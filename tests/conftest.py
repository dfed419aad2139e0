"""Shared fixtures: an in-memory GitHub Contents API and an isolated local cache.

``FakeGitHub`` behaves like the parts of the Contents API the app uses: files
are stored base64-encoded with a content sha, a ``PUT`` with a stale ``sha`` is
rejected with 409, and a ``PUT`` without ``sha`` over an existing file is
rejected with 422. It is wired into ``httpx.Client`` via ``httpx.MockTransport``
so no test ever touches the network.
"""

from __future__ import annotations

import base64
import hashlib
import json
from urllib.parse import unquote

import httpx
import pytest

from github_service import GitHubService
from models import Settings
from storage import MemoryStorage, SettingsStore, ShaStore

OWNER = "acme"
REPO = "gym"
DATA_PATH = "data/members.json"


def _wrap(b64: str, width: int = 60) -> str:
    # GitHub returns base64 content split into lines
    return "\n".join(b64[i : i + width] for i in range(0, len(b64), width)) + "\n"


class FakeGitHub:
    def __init__(self, owner: str = OWNER, repo: str = REPO) -> None:
        self.prefix = f"/repos/{owner}/{repo}"
        self.files: dict[str, tuple[str, str]] = {}
        self.requests: list[httpx.Request] = []
        self.put_bodies: list[dict] = []
        self.fail_with: tuple[int, str] | None = None
        self.raise_error: Exception | None = None
        self.encoding = "base64"

    def seed(self, path: str, text: str) -> str:
        content = base64.b64encode(text.encode("utf-8")).decode("ascii")
        sha = hashlib.sha1(content.encode("ascii")).hexdigest()
        self.files[path] = (content, sha)
        return sha

    def sha_of(self, path: str) -> str | None:
        entry = self.files.get(path)
        return entry[1] if entry else None

    def text_of(self, path: str) -> str:
        return base64.b64decode(self.files[path][0]).decode("utf-8")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail_with is not None:
            status, message = self.fail_with
            return httpx.Response(status, json={"message": message})

        path = unquote(request.url.path)
        if path == self.prefix and request.method == "GET":
            return httpx.Response(200, json={"full_name": path[len("/repos/") :], "private": True})

        contents = self.prefix + "/contents/"
        if not path.startswith(contents):
            return httpx.Response(404, json={"message": "Not Found"})
        file_path = path[len(contents) :]

        if request.method == "GET":
            if file_path not in self.files:
                return httpx.Response(404, json={"message": "Not Found"})
            content, sha = self.files[file_path]
            return httpx.Response(
                200,
                json={"path": file_path, "sha": sha, "encoding": self.encoding, "content": _wrap(content)},
            )

        if request.method == "PUT":
            body = json.loads(request.content)
            self.put_bodies.append(body)
            current = self.sha_of(file_path)
            if current is not None and "sha" not in body:
                return httpx.Response(422, json={"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
            if current is not None and body["sha"] != current:
                return httpx.Response(409, json={"message": f"{file_path} does not match {body['sha']}"})
            new_sha = hashlib.sha1(body["content"].encode("ascii")).hexdigest()
            self.files[file_path] = (body["content"], new_sha)
            return httpx.Response(
                201 if current is None else 200,
                json={"content": {"path": file_path, "sha": new_sha}, "commit": {"message": body["message"]}},
            )

        return httpx.Response(405, json={"message": "Method Not Allowed"})


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def sha_store(storage: MemoryStorage) -> ShaStore:
    return ShaStore(storage)


@pytest.fixture
def settings_store(storage: MemoryStorage) -> SettingsStore:
    return SettingsStore(storage)


@pytest.fixture
def settings() -> Settings:
    return Settings(repo_owner=OWNER, repo_name=REPO, data_path=DATA_PATH, token="ghp_test")


def make_service(fake: FakeGitHub, sha_store: ShaStore) -> GitHubService:
    client = httpx.Client(base_url="https://api.github.com", transport=httpx.MockTransport(fake.handler))
    return GitHubService(sha_store, client=client)


@pytest.fixture
def service(fake_github: FakeGitHub, sha_store: ShaStore):
    svc = make_service(fake_github, sha_store)
    yield svc
    svc.close()


@pytest.fixture
def service_factory(fake_github: FakeGitHub):
    """Build extra services against the same fake repo (e.g. a second browser tab)."""
    created: list[GitHubService] = []

    def factory(store: ShaStore) -> GitHubService:
        svc = make_service(fake_github, store)
        created.append(svc)
        return svc

    yield factory
    for svc in created:
        svc.close()
