"""
Shipment Import Test

Validates import_shipment against a throwaway SQLite document store:
1. Preconditions are checked in order before any write
2. Shipment totals and fish instance shape
3. Placeholder codes for lines without one
4. Atomicity: a failed write leaves no shipment and no instances
"""

import re
import sqlite3
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from core.errors import EmptyImport, MissingFarm, TransactionWriteFailure, Unauthenticated
from core.models.canonical import CandidateRecord, ShipmentMetadata
from inventory.shipments import (
    generate_missing_code,
    get_shipment,
    get_shipment_fish,
    get_shipments,
    import_shipment,
)
from storage.documents import FISH_INSTANCES, SHIPMENTS, SQLiteDocumentStore, farm_collection


FARM = "farm-1"
USER = "user-1"

MISSING_CODE = re.compile(r"^MISSING-\d+-[a-z0-9]{6}$")


@pytest.fixture
def store(tmp_path):
    return SQLiteDocumentStore(tmp_path / "test.db")


def _items():
    return [
        CandidateRecord.from_source({
            "scientificName": "Paracheirodon innesi",
            "commonName": "ניאון טטרה",
            "size": "S",
            "boxNumber": 1,
            "code": "NT-1",
            "bagCount": 2,
            "quantityPerBag": 50,
            "unitPrice": "0.50",
        }),
        CandidateRecord.from_source({
            "scientificName": "Betta splendens",
            "size": "M",
            "boxNumber": 2,
            "unitPrice": "12",
        }),
        {"scientificName": "Poecilia reticulata", "size": "M", "boxNumber": 3, "quantity": 30},
    ]


def _metadata():
    return ShipmentMetadata(supplier="Aqua Exports", date_received="2024-03-01", notes="late truck")


class TestPreconditions:

    def test_unauthenticated_first(self, store):
        with pytest.raises(Unauthenticated):
            import_shipment(store, None, _metadata(), [], None)

    def test_missing_farm_second(self, store):
        with pytest.raises(MissingFarm):
            import_shipment(store, "", _metadata(), [], USER)

    def test_empty_import_third(self, store):
        with pytest.raises(EmptyImport):
            import_shipment(store, FARM, _metadata(), [], USER)

    def test_nothing_written_on_precondition_failure(self, store):
        with pytest.raises(EmptyImport):
            import_shipment(store, FARM, _metadata(), [], USER)
        assert store.count(farm_collection(FARM, SHIPMENTS)) == 0


class TestImport:

    def test_outcome_totals(self, store):
        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)

        assert outcome.fish_count == 3
        assert outcome.total_fish == 100 + 1 + 30

    def test_shipment_record(self, store):
        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)
        shipment = get_shipment(store, FARM, outcome.shipment_id)

        assert shipment.supplier == "Aqua Exports"
        assert shipment.date_received == date(2024, 3, 1)
        assert shipment.total_item_types == 3
        assert shipment.total_fish_count == 131
        assert shipment.total_cost == Decimal("62")
        assert shipment.status == "received"
        assert shipment.created_by == USER
        assert shipment.notes == "late truck"

    def test_stored_document_uses_camel_case(self, store):
        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)
        doc = store.get(farm_collection(FARM, SHIPMENTS), outcome.shipment_id)
        assert doc["totalFishCount"] == 131
        assert doc["dateReceived"] == "2024-03-01"

    def test_instance_shape(self, store):
        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)
        fish = {f.scientific_name: f for f in get_shipment_fish(store, FARM, outcome.shipment_id)}

        neon = fish["Paracheirodon innesi"]
        assert neon.code == "NT-1"
        assert neon.code_status.value == "valid"
        assert neon.original_quantity == neon.current_quantity == 100
        assert neon.costs.invoice_cost_per_fish == Decimal("0.50")
        assert neon.costs.arrival_cost_per_fish == neon.costs.current_cost_per_fish == Decimal("0.50")
        assert neon.costs.total_invoice_cost == Decimal("50")
        assert neon.mortality.total_mortality == 0
        assert neon.aquarium_id is None
        assert neon.phase == "reception"
        assert neon.imported_by == USER

    def test_missing_code_placeholder(self, store):
        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)
        fish = {f.scientific_name: f for f in get_shipment_fish(store, FARM, outcome.shipment_id)}

        betta = fish["Betta splendens"]
        assert MISSING_CODE.match(betta.code)
        assert betta.code_status.value == "missing"
        assert betta.costs.total_invoice_cost == Decimal("12")

    def test_date_defaults_to_today(self, store):
        outcome = import_shipment(store, FARM, ShipmentMetadata(), _items()[:1], USER)
        assert get_shipment(store, FARM, outcome.shipment_id).date_received == date.today()

    def test_shipments_listed_latest_first(self, store):
        import_shipment(store, FARM, ShipmentMetadata(date_received="2024-01-01"), _items()[:1], USER)
        import_shipment(store, FARM, ShipmentMetadata(date_received="2024-05-01"), _items()[:1], USER)
        dates = [s.date_received for s in get_shipments(store, FARM)]
        assert dates == [date(2024, 5, 1), date(2024, 1, 1)]


class TestAtomicity:

    def test_failed_instance_write_rolls_back_everything(self, store):
        original = SQLiteDocumentStore._apply_write

        def failing(self, cursor, op, index):
            if index == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return original(self, cursor, op, index)

        with patch.object(SQLiteDocumentStore, "_apply_write", failing):
            with pytest.raises(TransactionWriteFailure) as exc_info:
                import_shipment(store, FARM, _metadata(), _items(), USER)

        assert "disk I/O error" in str(exc_info.value)
        assert store.count(farm_collection(FARM, SHIPMENTS)) == 0
        assert store.count(farm_collection(FARM, FISH_INSTANCES)) == 0

    def test_store_usable_after_rollback(self, store):
        original = SQLiteDocumentStore._apply_write

        def failing(self, cursor, op, index):
            if index == 1:
                raise sqlite3.OperationalError("database is locked")
            return original(self, cursor, op, index)

        with patch.object(SQLiteDocumentStore, "_apply_write", failing):
            with pytest.raises(TransactionWriteFailure):
                import_shipment(store, FARM, _metadata(), _items(), USER)

        outcome = import_shipment(store, FARM, _metadata(), _items(), USER)
        assert len(get_shipment_fish(store, FARM, outcome.shipment_id)) == 3


def test_generate_missing_code_pattern():
    code = generate_missing_code()
    assert MISSING_CODE.match(code)
    assert generate_missing_code() != code
