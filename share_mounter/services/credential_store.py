"""Credential Store - resolves credential references at mount time."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, SecretStr

from ..config import ShareCredential


class Credentials(BaseModel):
    username: str
    password: SecretStr

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***)"


class CredentialStore(ABC):
    """Secrets are looked up only when a mount needs them and never stored on a Share."""

    @abstractmethod
    async def resolve(self, credential_ref: Optional[str]) -> Optional[Credentials]:
        pass


class SettingsCredentialStore(CredentialStore):
    """Credentials configured in the settings file, keyed by credential_ref."""

    def __init__(self, credentials: Mapping[str, ShareCredential]):
        self._credentials: Dict[str, ShareCredential] = dict(credentials)

    async def resolve(self, credential_ref: Optional[str]) -> Optional[Credentials]:
        if not credential_ref:
            return None
        entry = self._credentials.get(credential_ref)
        if entry is None:
            logging.warning(f"No credentials configured for reference {credential_ref!r}")
            return None
        return Credentials(username=entry.username, password=entry.password)
