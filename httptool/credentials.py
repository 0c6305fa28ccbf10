from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from httptool.crypto import CryptoBox
from httptool.errors import CredentialError

log = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def get_credentials(self, name: str) -> dict[str, Any]: ...


class StaticCredentialProvider:
    def __init__(self, credentials: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self._credentials = {k: dict(v) for k, v in (credentials or {}).items()}

    async def get_credentials(self, name: str) -> dict[str, Any]:
        if name not in self._credentials:
            raise CredentialError(f"No credentials configured for '{name}'")
        return dict(self._credentials[name])


class EncryptedCredentialProvider:
    """
    Reads credentials from a JSON file mapping credential name -> Fernet ciphertext.
    The file is re-read on every lookup so rotated secrets apply without a restart.
    """

    def __init__(self, path: str | Path, *, crypto: CryptoBox) -> None:
        self.path = Path(path)
        self.crypto = crypto

    def _load(self) -> dict[str, str]:
        try:
            obj = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise CredentialError(f"Credentials file not found: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise CredentialError(f"Credentials file is not valid JSON: {self.path}") from exc
        if not isinstance(obj, dict):
            raise CredentialError("Credentials file must contain a JSON object")
        return {str(k): str(v) for k, v in obj.items() if isinstance(v, str)}

    async def get_credentials(self, name: str) -> dict[str, Any]:
        tokens = self._load()
        token = tokens.get(name)
        if not token:
            raise CredentialError(f"No credentials configured for '{name}'")
        log.debug("credentials: decrypting %s from %s", name, self.path)
        return self.crypto.decrypt_json(token)

    def store(self, name: str, value: dict[str, Any]) -> None:
        tokens = self._load() if self.path.exists() else {}
        tokens[name] = self.crypto.encrypt_json(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(tokens, indent=2, sort_keys=True), encoding="utf-8")
