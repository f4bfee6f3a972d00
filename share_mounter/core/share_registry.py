"""
Share Registry - the canonical, ordered list of configured shares.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from share_mounter.core.exceptions import InvalidIndexError
from share_mounter.models import Share

ShareMutator = Callable[[Share], None]


class ShareRegistry:
    """
    Async-safe, in-memory store for Share records.

    Pure data access: no business rules beyond uniqueness of resource_uri.
    Every read returns deep copies so callers always work on a consistent
    snapshot and can never mutate the stored record behind the lock.
    """

    def __init__(self):
        # dicts keep insertion order, which the UI and the sweeper rely on
        self._shares_by_id: Dict[str, Share] = {}
        self._lock = asyncio.Lock()
        logging.info("ShareRegistry initialized")

    async def add(self, share: Share) -> bool:
        """Add a share. Adding an already known resource_uri is a no-op."""
        async with self._lock:
            if any(s.resource_uri == share.resource_uri for s in self._shares_by_id.values()):
                logging.debug(f"Share {share.resource_uri} already registered, not adding it twice")
                return False
            if share.id in self._shares_by_id:
                logging.error(f"Share with ID {share.id} already exists in registry. Use update() to modify.")
                return False
            self._shares_by_id[share.id] = share.model_copy(deep=True)
            return True

    async def remove(self, share_id: str) -> bool:
        async with self._lock:
            if share_id in self._shares_by_id:
                del self._shares_by_id[share_id]
                return True
            return False

    async def update(self, share_id: str, mutator: ShareMutator) -> Share:
        """
        Apply mutator to a copy of the stored share and swap it in.

        Raises:
            InvalidIndexError: share_id is unknown. Nothing is changed.
        """
        async with self._lock:
            current = self._shares_by_id.get(share_id)
            if current is None:
                raise InvalidIndexError(share_id)
            updated = current.model_copy(deep=True)
            mutator(updated)
            self._shares_by_id[share_id] = updated
            return updated.model_copy(deep=True)

    async def get(self, share_id: str) -> Optional[Share]:
        async with self._lock:
            share = self._shares_by_id.get(share_id)
            return share.model_copy(deep=True) if share else None

    async def get_by_resource_uri(self, resource_uri: str) -> Optional[Share]:
        async with self._lock:
            for share in self._shares_by_id.values():
                if share.resource_uri == resource_uri:
                    return share.model_copy(deep=True)
            return None

    async def all(self) -> List[Share]:
        """All shares in insertion order."""
        async with self._lock:
            return [share.model_copy(deep=True) for share in self._shares_by_id.values()]

    async def count(self) -> int:
        async with self._lock:
            return len(self._shares_by_id)
