from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from httptool.errors import CredentialError


def mask_secret(value: str, *, show_start: int = 4, show_end: int = 2) -> str:
    v = str(value or "").strip()
    if len(v) <= show_start + show_end:
        return "*" * len(v)
    return f"{v[:show_start]}{'*' * 8}{v[-show_end:]}"


def mask_mapping(values: dict[str, Any]) -> dict[str, Any]:
    return {k: (mask_secret(v) if isinstance(v, str) else "***") for k, v in (values or {}).items()}


@dataclass(frozen=True)
class CryptoBox:
    fernet: Fernet

    def encrypt_json(self, value: dict[str, Any]) -> str:
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        return self.fernet.encrypt(raw.encode("utf-8")).decode("ascii")

    def decrypt_json(self, token: str) -> dict[str, Any]:
        try:
            raw = self.fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise CredentialError("Failed to decrypt credential (wrong HTTPTOOL_SECRET_KEY?)") from exc
        obj = json.loads(raw)
        if not isinstance(obj, dict):
            raise CredentialError("Decrypted credential is not a JSON object")
        return obj


def get_crypto_box(secret_key: Optional[str]) -> CryptoBox:
    if not secret_key:
        raise CredentialError(
            "HTTPTOOL_SECRET_KEY is required to read encrypted credentials. "
            "Generate one with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    return CryptoBox(fernet=Fernet(secret_key.encode("utf-8")))
