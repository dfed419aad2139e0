from __future__ import annotations

import pytest

import auth


@pytest.fixture(autouse=True)
def _clear_owner_env(monkeypatch):
    monkeypatch.delenv("GYMHQ_OWNER_USERNAME", raising=False)
    monkeypatch.delenv("GYMHQ_OWNER_PASSWORD_HASH", raising=False)


def test_hash_and_verify():
    hashed = auth.hash_password("s3cret!")
    assert hashed.startswith("$2")
    assert auth.verify_password("s3cret!", hashed)
    assert not auth.verify_password("wrong", hashed)


def test_long_passwords_truncated_to_72_bytes():
    base = "x" * 72
    hashed = auth.hash_password(base + "tail-one")
    assert auth.verify_password(base + "tail-two", hashed)


def test_default_owner_login():
    assert auth.login("owner", "StrongPass!23")
    assert auth.login("  owner ", "StrongPass!23")
    assert not auth.login("owner", "strongpass!23")
    assert not auth.login("admin", "StrongPass!23")


def test_owner_credential_from_environment(monkeypatch):
    monkeypatch.setenv("GYMHQ_OWNER_USERNAME", "coach")
    monkeypatch.setenv("GYMHQ_OWNER_PASSWORD_HASH", auth.hash_password("lift-heavy"))

    assert auth.login("coach", "lift-heavy")
    assert not auth.login("owner", "StrongPass!23")
