from __future__ import annotations

import json

import pytest
from cryptography.fernet import Fernet

from httptool.credentials import EncryptedCredentialProvider, StaticCredentialProvider
from httptool.crypto import get_crypto_box, mask_secret
from httptool.errors import CredentialError


def test_crypto_box_round_trip() -> None:
    box = get_crypto_box(Fernet.generate_key().decode())
    token = box.encrypt_json({"user": "user", "password": "password"})
    assert "password" not in token
    assert box.decrypt_json(token) == {"user": "user", "password": "password"}


def test_wrong_key_fails() -> None:
    token = get_crypto_box(Fernet.generate_key().decode()).encrypt_json({"token": "t"})
    with pytest.raises(CredentialError, match="Failed to decrypt"):
        get_crypto_box(Fernet.generate_key().decode()).decrypt_json(token)


def test_missing_secret_key() -> None:
    with pytest.raises(CredentialError, match="HTTPTOOL_SECRET_KEY"):
        get_crypto_box(None)


def test_mask_secret() -> None:
    assert mask_secret("sk-1234567890") == "sk-1********90"
    assert mask_secret("abc") == "***"


@pytest.mark.asyncio
async def test_encrypted_provider_store_and_read(tmp_path) -> None:
    box = get_crypto_box(Fernet.generate_key().decode())
    path = tmp_path / "creds" / "credentials.json"
    provider = EncryptedCredentialProvider(path, crypto=box)
    provider.store("exampleApi", {"token": "abc"})
    provider.store("other", {"user": "u", "password": "p"})

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert set(on_disk) == {"exampleApi", "other"}
    assert "abc" not in path.read_text(encoding="utf-8")

    assert await provider.get_credentials("exampleApi") == {"token": "abc"}
    with pytest.raises(CredentialError, match="No credentials configured"):
        await provider.get_credentials("missing")


@pytest.mark.asyncio
async def test_encrypted_provider_missing_file(tmp_path) -> None:
    provider = EncryptedCredentialProvider(tmp_path / "nope.json", crypto=get_crypto_box(Fernet.generate_key().decode()))
    with pytest.raises(CredentialError, match="not found"):
        await provider.get_credentials("x")


@pytest.mark.asyncio
async def test_static_provider_returns_copies() -> None:
    provider = StaticCredentialProvider({"api": {"token": "t"}})
    creds = await provider.get_credentials("api")
    creds["token"] = "changed"
    assert await provider.get_credentials("api") == {"token": "t"}
