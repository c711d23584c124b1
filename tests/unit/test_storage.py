import pytest
from datetime import datetime
from unittest.mock import Mock, patch
from pymongo.errors import ServerSelectionTimeoutError

from apps.api.errors import StoreUnavailable, ValidationError
from apps.api.services.storage import Storage, DbConfig


def _reading(session_id, minute, **blocks):
    return {"sessionId": session_id, "timestamp": datetime(2024, 1, 1, 8, minute), **blocks}


class TestStorageLifecycle:

    def test_connect_pings_and_creates_indexes(self, mongo_client):
        storage = Storage(DbConfig(url="mongodb://localhost:27017", database="lifecycle"), client=mongo_client)
        storage.connect()

        assert storage.db.name == "lifecycle"
        assert "patientId_1" in storage.patients.index_information()
        assert "sessionId_1" in storage.sessions.index_information()

    def test_connect_fails_when_store_unreachable(self, storage):
        with patch.object(storage, "ping", return_value=False):
            with pytest.raises(StoreUnavailable):
                storage.connect()

    def test_ping_reports_driver_failure(self, storage):
        storage.client = Mock()
        storage.client.admin.command.side_effect = ServerSelectionTimeoutError("down")
        assert storage.ping() is False

    def test_driver_errors_become_store_unavailable(self, storage):
        with patch.object(storage.patients, "find", side_effect=ServerSelectionTimeoutError("down")):
            with pytest.raises(StoreUnavailable) as exc:
                storage.list_patients()
        assert exc.value.message == "Failed to fetch patients"


class TestPatients:

    def test_create_stamps_timestamps(self, storage):
        doc = storage.create_patient({"patientId": "P1", "name": "A", "age": 60})

        assert isinstance(doc["_id"], str)
        assert doc["createdAt"] == doc["updatedAt"]

    def test_duplicate_patient_id_is_rejected(self, storage):
        storage.create_patient({"patientId": "P1", "name": "A", "age": 60})
        with pytest.raises(ValidationError):
            storage.create_patient({"patientId": "P1", "name": "B", "age": 61})
        assert len(storage.list_patients()) == 1


class TestSessions:

    def test_colliding_session_id_is_regenerated(self, mongo_client):
        ids = Mock()
        ids.session_id.side_effect = ["SES_1_P1", "SES_1_P1", "SES_2_P1"]
        storage = Storage(DbConfig(url="mongodb://localhost:27017"), client=mongo_client, ids=ids)
        storage.ensure_indexes()

        first = storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 1)})
        second = storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 2)})

        assert first["sessionId"] == "SES_1_P1"
        assert second["sessionId"] == "SES_2_P1"

    def test_gives_up_after_repeated_collisions(self, mongo_client):
        ids = Mock()
        ids.session_id.return_value = "SES_1_P1"
        storage = Storage(DbConfig(url="mongodb://localhost:27017"), client=mongo_client, ids=ids)
        storage.ensure_indexes()

        storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 1)})
        with pytest.raises(ValidationError):
            storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 2)})

    def test_update_merges_only_supplied_fields(self, storage):
        created = storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 1)})
        updated = storage.update_session(created["sessionId"], {"status": "completed"})

        assert updated["status"] == "completed"
        assert updated["startTime"] == datetime(2024, 1, 1)
        assert "updatedAt" in updated

    def test_update_unknown_session_returns_none(self, storage):
        assert storage.update_session("SES_0_X", {"status": "completed"}) is None

    def test_emergency_events_are_appended(self, storage):
        created = storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 1)})
        storage.append_emergency_event(created["sessionId"], {"type": "earthquake", "magnitude": 5.1})
        session = storage.append_emergency_event(created["sessionId"], {"type": "aftershock", "magnitude": 3.2})

        assert [e["type"] for e in session["emergencyEvents"]] == ["earthquake", "aftershock"]
        assert all("timestamp" in e for e in session["emergencyEvents"])


class TestReadings:

    def test_progress_sync_reports_missing_session(self, storage):
        assert storage.sync_session_progress("SES_0_X", 40.0) is False

    def test_progress_sync_overwrites_session(self, storage):
        created = storage.create_session({"patientId": "P1", "startTime": datetime(2024, 1, 1)})
        assert storage.sync_session_progress(created["sessionId"], 40.0) is True
        assert storage.get_session(created["sessionId"])["dialysisProgress"] == 40.0

    def test_load_readings_window_and_limit(self, storage):
        for minute in range(6):
            storage.insert_reading(_reading("S1", minute))
        storage.insert_reading(_reading("S2", 3))

        window = storage.load_readings("S1", since=datetime(2024, 1, 1, 8, 1),
                                       until=datetime(2024, 1, 1, 8, 4), limit=100)
        assert [r["timestamp"].minute for r in window] == [4, 3, 2, 1]

        limited = storage.load_readings("S1", limit=2)
        assert [r["timestamp"].minute for r in limited] == [5, 4]


class TestAnalytics:

    def test_aggregates_patient_readings(self, storage):
        storage.insert_reading(_reading("S1", 0, patientId="P1",
                                        vitalSigns={"heartRate": 70, "dialysisProgress": 10},
                                        fluidManagement={"flowRate": 300},
                                        seismic={"magnitude": 0.5}))
        storage.insert_reading(_reading("S1", 1, patientId="P1",
                                        vitalSigns={"heartRate": 80, "dialysisProgress": 20},
                                        fluidManagement={"flowRate": 310},
                                        seismic={"magnitude": 4.5}))
        storage.insert_reading(_reading("S9", 1, patientId="P9", vitalSigns={"heartRate": 200}))

        stats = storage.patient_analytics("P1")
        assert stats == {
            "avgHeartRate": 75.0,
            "avgDialysisProgress": 15.0,
            "avgFlowRate": 305.0,
            "totalReadings": 2,
            "maxSeismicActivity": 4.5,
        }

    def test_date_range_narrows_aggregate(self, storage):
        for minute, hr in [(0, 60), (10, 90)]:
            storage.insert_reading(_reading("S1", minute, patientId="P1", vitalSigns={"heartRate": hr}))

        stats = storage.patient_analytics("P1", since=datetime(2024, 1, 1, 8, 5))
        assert stats["totalReadings"] == 1
        assert stats["avgHeartRate"] == 90.0

    def test_no_readings_gives_empty_result(self, storage):
        assert storage.patient_analytics("nobody") == {}

    def test_zero_count_group_row_gives_empty_result(self, storage):
        row = {"avgHeartRate": None, "avgDialysisProgress": None, "avgFlowRate": None,
               "totalReadings": 0, "maxSeismicActivity": None}
        with patch.object(storage.readings, "aggregate", return_value=iter([row])):
            assert storage.patient_analytics("P1") == {}
