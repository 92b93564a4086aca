"""
Farm Settings Test

Validates that farm vocabularies (rooms, aquarium statuses) are typed,
defaulted on read and validated on write.
"""

import pytest

from core.errors import DocumentNotFound, InvalidFarmSettings
from core.models.canonical import DEFAULT_ROOMS, FarmSettings, Room, StatusDef
from inventory.farms import create_farm, get_farm, load_farm_settings, save_farm_settings
from storage.documents import FARMS, SQLiteDocumentStore


@pytest.fixture
def store(tmp_path):
    return SQLiteDocumentStore(tmp_path / "test.db")


class TestFarmSettings:

    def test_defaults_for_unknown_farm(self, store):
        settings = load_farm_settings(store, "no-such-farm")
        assert settings.currency == "ILS"
        assert settings.room_ids() == [room["id"] for room in DEFAULT_ROOMS]

    def test_create_farm_stores_settings(self, store):
        farm_id = create_farm(store, "Galilee Fish", "owner-1")
        farm = get_farm(store, farm_id)
        assert farm["ownerId"] == "owner-1"
        assert farm["memberRoles"] == {"owner-1": "owner"}
        assert farm["settings"]["aquariumRooms"][0]["id"] == DEFAULT_ROOMS[0]["id"]

    def test_get_missing_farm(self, store):
        with pytest.raises(DocumentNotFound):
            get_farm(store, "nope")

    def test_round_trip_custom_vocabulary(self, store):
        farm_id = create_farm(store, "Galilee Fish", "owner-1")
        settings = FarmSettings(
            currency="USD",
            rooms=[Room(id="north", label="צפון")],
            statuses=[StatusDef(id="empty", label="ריק", color="#ffffff")],
        )
        save_farm_settings(store, farm_id, settings)

        loaded = load_farm_settings(store, farm_id)
        assert loaded.currency == "USD"
        assert loaded.room_ids() == ["north"]
        assert loaded.statuses[0].color == "#ffffff"
        assert get_farm(store, farm_id)["name"] == "Galilee Fish"

    def test_save_creates_missing_farm_document(self, store):
        save_farm_settings(store, "farm-x", FarmSettings(language="en"))
        assert store.get(FARMS, "farm-x")["settings"]["language"] == "en"

    def test_invalid_settings_rejected(self, store):
        farm_id = create_farm(store, "Galilee Fish", "owner-1")
        bad = FarmSettings(rooms=[Room(id="a", label="A"), Room(id="a", label="B")])
        with pytest.raises(InvalidFarmSettings) as exc_info:
            save_farm_settings(store, farm_id, bad)
        assert "Duplicate room id: a" in exc_info.value.messages
        assert load_farm_settings(store, farm_id).room_ids() == [room["id"] for room in DEFAULT_ROOMS]

    def test_create_farm_with_invalid_settings(self, store):
        with pytest.raises(InvalidFarmSettings):
            create_farm(store, "Bad Farm", "owner-1", FarmSettings(currency=""))

    def test_legacy_key_names_accepted(self):
        settings = FarmSettings.model_validate({
            "rooms": [{"id": "r1", "label": "Room 1"}],
            "statuses": [{"id": "s1", "label": "S", "color": "#000000"}],
        })
        assert settings.room_ids() == ["r1"]
