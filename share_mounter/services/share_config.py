"""Share Configuration Handler - share definitions from settings."""

import getpass
import logging
from typing import List, Optional

from pydantic import ValidationError

from ..config import Settings
from ..models import Share, ShareDefinition

USERNAME_PLACEHOLDER = "%USERNAME%"


class ShareConfigHandler:
    """
    Builds managed and user share definitions from settings.

    Central configuration is shared by many users, so every text field may
    carry %USERNAME%, which is replaced with the local login name.
    """

    def __init__(self, settings: Settings, username: Optional[str] = None):
        self._settings = settings
        self._username = username

    @property
    def username(self) -> str:
        if self._username is None:
            self._username = getpass.getuser()
        return self._username

    def substitute(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.replace(USERNAME_PLACEHOLDER, self.username)

    def _expand(self, definition: ShareDefinition) -> ShareDefinition:
        return definition.model_copy(
            update={
                "resource_uri": self.substitute(definition.resource_uri),
                "credential_ref": self.substitute(definition.credential_ref),
                "mount_point_name": self.substitute(definition.mount_point_name),
            }
        )

    def managed_definitions(self) -> List[ShareDefinition]:
        return [self._expand(d) for d in self._settings.managed_shares]

    def user_definitions(self) -> List[ShareDefinition]:
        return [self._expand(d) for d in self._settings.user_shares]

    def user_shares(self) -> List[Share]:
        """User shares as Share records; invalid entries are logged and skipped."""
        shares = []
        for definition in self.user_definitions():
            try:
                shares.append(Share(**definition.model_dump(), managed=False))
            except ValidationError as e:
                logging.error(f"Ignoring invalid share configuration {definition.resource_uri}: {e}")
        return shares

    def valid_managed_definitions(self) -> List[ShareDefinition]:
        valid = []
        for definition in self.managed_definitions():
            try:
                Share(**definition.model_dump(), managed=True)
            except ValidationError as e:
                logging.error(f"Ignoring invalid managed share {definition.resource_uri}: {e}")
                continue
            valid.append(definition)
        return valid

    async def load_into(self, orchestrator) -> int:
        """Register every configured share; managed ones first. Returns the share count."""
        await orchestrator.apply_managed_configuration(self.valid_managed_definitions())
        for share in self.user_shares():
            await orchestrator.add_share(share)
        count = len(await orchestrator.shares())
        logging.info(f"Loaded share configuration: {count} share(s)")
        return count
