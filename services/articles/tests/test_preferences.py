import json

import pytest

from services.articles.app.preferences import PreferencesStore, preferences_key

from conftest import put

EMAIL = "alice@example.com"


def test_key_is_case_insensitive_and_hides_the_email():
    key = preferences_key("Alice@Example.com")
    assert key == preferences_key(EMAIL)
    assert key.startswith("user_preferences/")
    assert key.endswith("/preferences.json")
    assert "alice" not in key


@pytest.mark.asyncio
async def test_defaults_when_nothing_stored(store):
    prefs = await PreferencesStore(store).load(EMAIL)
    assert prefs == {"email": EMAIL, "scraperConfig": None, "feedSettings": {}}


@pytest.mark.asyncio
async def test_defaults_when_blob_is_corrupt(store_root, store):
    put(store_root, preferences_key(EMAIL), "{corrupt")
    prefs = await PreferencesStore(store).load(EMAIL)
    assert prefs["scraperConfig"] is None


@pytest.mark.asyncio
async def test_save_merges_and_persists(store_root, store):
    preferences = PreferencesStore(store)

    first = await preferences.save(EMAIL, {
        "scraperConfig": {"keywords": ["fenerbahce"], "region": "tr"},
        "feedSettings": {"density": "compact"},
    })
    second = await preferences.save(EMAIL, {
        "feedSettings": {"showTranslations": True},
        "email": "mallory@example.com",
        "isAdmin": True,
    })

    assert second["email"] == EMAIL
    assert "isAdmin" not in second
    assert second["scraperConfig"] == {"keywords": ["fenerbahce"], "region": "tr"}
    assert second["feedSettings"] == {"density": "compact", "showTranslations": True}
    assert second["createdAt"] == first["createdAt"]
    assert second["lastUpdated"] >= first["lastUpdated"]

    stored = json.loads((store_root / preferences_key(EMAIL)).read_text())
    assert stored == second
    assert await preferences.load(EMAIL) == second
