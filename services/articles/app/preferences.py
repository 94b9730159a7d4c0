"""Per-user preference blobs, stored under a hash of the user's email."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict

from shared.app_logging.logger import get_logger
from shared.storage.object_store import ObjectNotFoundError, ObjectStore

logger = get_logger("articles.preferences")

PREFERENCES_PREFIX = "user_preferences"
# Fields a client may set; everything else is managed here
EDITABLE_FIELDS = ("scraperConfig", "feedSettings")


def preferences_key(email: str) -> str:
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
    return f"{PREFERENCES_PREFIX}/{digest}/preferences.json"


def default_preferences(email: str) -> Dict[str, Any]:
    return {"email": email, "scraperConfig": None, "feedSettings": {}}


class PreferencesStore:
    def __init__(self, store: ObjectStore):
        self.store = store

    async def load(self, email: str) -> Dict[str, Any]:
        key = preferences_key(email)
        try:
            stored = json.loads(await self.store.read(key))
        except ObjectNotFoundError:
            return default_preferences(email)
        except ValueError as e:
            logger.error(f"Preferences blob {key} is not valid JSON, serving defaults: {e}")
            return default_preferences(email)
        if not isinstance(stored, dict):
            return default_preferences(email)
        return {**default_preferences(email), **stored, "email": email}

    async def save(self, email: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``updates`` into the stored preferences and write them back."""
        current = await self.load(email)
        now = datetime.now(timezone.utc).isoformat()

        merged = dict(current)
        for field in EDITABLE_FIELDS:
            if field not in updates:
                continue
            value = updates[field]
            if field == "feedSettings" and isinstance(value, dict):
                merged[field] = {**(current.get(field) or {}), **value}
            else:
                merged[field] = value
        merged["createdAt"] = current.get("createdAt") or now
        merged["lastUpdated"] = now

        await self.store.write(preferences_key(email), json.dumps(merged).encode("utf-8"))
        logger.info(f"Saved preferences for {email}")
        return merged
