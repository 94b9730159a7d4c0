"""
``triggered_by`` filtering.

Each batch directory may carry a ``metadata.json`` written by the job that
produced it, naming the user who triggered the run. Batches without one are
attributed to ``system``. When the metadata cannot be read for any other
reason the batch is kept: older, untagged data stays visible rather than
silently disappearing.
"""

import asyncio
import json
from typing import Dict, List, Optional

from services.articles.app.errors import UnauthorizedError
from services.articles.app.sources import metadata_key
from shared.app_logging.logger import get_logger
from shared.schemas.article import Article
from shared.storage.object_store import ObjectNotFoundError, ObjectStore, ObjectStoreError

logger = get_logger("articles.ownership")

SYSTEM_IDENTITY = "system"


def resolve_owner_filter(
    triggered_by: Optional[str],
    caller_email: Optional[str],
    is_admin: bool,
) -> Optional[str]:
    """
    Turn the requested ``triggered_by`` value into the email to filter on.

    Returns None when no filtering applies. Raises ``UnauthorizedError`` for
    ``me`` without a signed-in caller, or for another user's email when the
    caller is not an admin.
    """
    value = (triggered_by or "").strip()
    if not value or value.lower() == "all":
        return None
    if value.lower() == "me":
        if not caller_email:
            raise UnauthorizedError("triggered_by=me requires a signed-in user", {"triggered_by": value})
        return caller_email.lower()
    if caller_email and value.lower() == caller_email.lower():
        return caller_email.lower()
    if not is_admin:
        raise UnauthorizedError(
            "Only admins may view feeds triggered by other users",
            {"triggered_by": value},
        )
    return value.lower()


class OwnershipResolver:
    """Looks up who triggered each batch; one lookup per batch per instance."""

    def __init__(self, store: ObjectStore):
        self.store = store
        self._owners: Dict[str, Optional[str]] = {}

    async def owner_of(self, batch_id: str) -> Optional[str]:
        """Email that triggered ``batch_id``; ``system`` when untagged; None when unknown."""
        if batch_id not in self._owners:
            self._owners[batch_id] = await self._lookup(batch_id)
        return self._owners[batch_id]

    async def _lookup(self, batch_id: str) -> Optional[str]:
        key = metadata_key(batch_id)
        try:
            metadata = json.loads(await self.store.read(key))
        except ObjectNotFoundError:
            return SYSTEM_IDENTITY
        except (ObjectStoreError, ValueError) as e:
            logger.warning(f"Could not read run metadata {key}, keeping batch: {e}")
            return None
        if not isinstance(metadata, dict):
            logger.warning(f"Run metadata {key} is not an object, keeping batch")
            return None
        owner = metadata.get("triggered_by")
        return owner.strip().lower() if isinstance(owner, str) and owner.strip() else SYSTEM_IDENTITY

    async def filter(self, articles: List[Article], owner: str) -> List[Article]:
        batches = sorted({a.batch_id for a in articles if a.batch_id is not None})
        owners = await asyncio.gather(*(self.owner_of(b) for b in batches))
        keep = {
            batch for batch, batch_owner in zip(batches, owners)
            if batch_owner is None or batch_owner == owner
        }
        kept = [a for a in articles if a.batch_id is None or a.batch_id in keep]
        logger.info(f"Ownership filter for {owner}: kept {len(kept)} of {len(articles)} articles")
        return kept
