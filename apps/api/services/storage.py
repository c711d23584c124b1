from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime
import logging

from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from packages.dialysis_core.ids import RecordIdGenerator
from packages.dialysis_core.schemas import to_naive_utc, utcnow
from ..errors import StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5


@dataclass
class DbConfig:
    url: str
    database: str = "dialysis_system"
    timeout_ms: int = 5000


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    """Translate driver failures into the service's error taxonomy."""
    try:
        yield
    except DuplicateKeyError as e:
        raise ValidationError(f"Failed to {action}: duplicate key {_duplicate_key_fields(e)}") from e
    except PyMongoError as e:
        raise StoreUnavailable(f"Failed to {action}") from e


def _duplicate_key_fields(err: DuplicateKeyError) -> str:
    details = err.details or {}
    key = details.get("keyValue") or details.get("keyPattern")
    if key:
        return ", ".join(f"{k}={v}" for k, v in key.items())
    return str(err)


def _public(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


def _time_range(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, datetime]:
    bounds = {}
    if start is not None:
        bounds["$gte"] = to_naive_utc(start)
    if end is not None:
        bounds["$lte"] = to_naive_utc(end)
    return bounds


class Storage:
    """Handle on the four collections behind the record service."""

    def __init__(self, cfg: DbConfig, client: Optional[MongoClient] = None,
                 ids: Optional[RecordIdGenerator] = None):
        self.cfg = cfg
        self.client = client or MongoClient(
            cfg.url,
            serverSelectionTimeoutMS=cfg.timeout_ms,
            connect=False,
        )
        self.db = self.client.get_default_database(default=cfg.database)
        self.ids = ids or RecordIdGenerator()

        self.patients: Collection = self.db["patients"]
        self.sessions: Collection = self.db["sessions"]
        self.readings: Collection = self.db["readings"]
        self.reports: Collection = self.db["reports"]

    # --- lifecycle ---

    def connect(self):
        if not self.ping():
            raise StoreUnavailable(f"Document store at database '{self.db.name}' is unreachable")
        self.ensure_indexes()
        logger.info("Connected to document store (database=%s)", self.db.name)

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning("Document store ping failed: %s", e)
            return False

    def ensure_indexes(self):
        with _store_errors("create indexes"):
            self.patients.create_index([("patientId", ASCENDING)], unique=True)
            self.sessions.create_index([("sessionId", ASCENDING)], unique=True)
            self.sessions.create_index([("patientId", ASCENDING), ("startTime", DESCENDING)])
            self.readings.create_index([("sessionId", ASCENDING), ("timestamp", DESCENDING)])
            self.readings.create_index([("patientId", ASCENDING), ("timestamp", DESCENDING)])
            self.reports.create_index([("reportId", ASCENDING)], unique=True)
            self.reports.create_index([("patientId", ASCENDING), ("timestamp", DESCENDING)])

    def close(self):
        self.client.close()
        logger.info("Document store connection closed")

    # --- patients ---

    def list_patients(self) -> List[Dict]:
        with _store_errors("fetch patients"):
            return [_public(d) for d in self.patients.find()]

    def create_patient(self, patient_data: Dict) -> Dict:
        now = utcnow()
        doc = {**patient_data, "createdAt": now, "updatedAt": now}
        with _store_errors("add patient"):
            result = self.patients.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _public(doc)

    def get_patient(self, patient_id: str) -> Optional[Dict]:
        with _store_errors("fetch patient"):
            return _public(self.patients.find_one({"patientId": patient_id}))

    # --- sessions ---

    def _insert_with_generated_id(self, collection: Collection, doc: Dict, field: str, make_id) -> Dict:
        """Insert ``doc`` under a fresh id, regenerating it if the unique index rejects it."""
        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            candidate = {**doc, field: make_id()}
            try:
                result = collection.insert_one(candidate)
            except DuplicateKeyError as e:
                # Another process may have issued the same id; other unique keys are real conflicts
                if field not in (e.details or {}).get("keyPattern", {field: 1}):
                    raise
                logger.warning("%s collision on %s (attempt %d)", field, candidate[field], attempt)
                continue
            candidate["_id"] = result.inserted_id
            return _public(candidate)
        raise ValidationError(f"Could not allocate a unique {field}")

    def create_session(self, session_data: Dict) -> Dict:
        patient_id = session_data["patientId"]
        doc = {
            "status": "active",
            "emergencyEvents": [],
            **session_data,
            "createdAt": utcnow(),
        }
        with _store_errors("create session"):
            return self._insert_with_generated_id(
                self.sessions, doc, "sessionId", lambda: self.ids.session_id(patient_id)
            )

    def get_session(self, session_id: str) -> Optional[Dict]:
        with _store_errors("fetch session"):
            return _public(self.sessions.find_one({"sessionId": session_id}))

    def update_session(self, session_id: str, update_data: Dict) -> Optional[Dict]:
        changes = {**update_data, "updatedAt": utcnow()}
        with _store_errors("update session"):
            doc = self.sessions.find_one_and_update(
                {"sessionId": session_id},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        return _public(doc)

    def list_sessions_for_patient(self, patient_id: str) -> List[Dict]:
        with _store_errors("fetch sessions"):
            cursor = self.sessions.find({"patientId": patient_id}).sort("startTime", DESCENDING)
            return [_public(d) for d in cursor]

    def append_emergency_event(self, session_id: str, event: Dict) -> Optional[Dict]:
        entry = {**event, "timestamp": utcnow()}
        with _store_errors("log emergency event"):
            doc = self.sessions.find_one_and_update(
                {"sessionId": session_id},
                {"$push": {"emergencyEvents": entry}},
                return_document=ReturnDocument.AFTER,
            )
        return _public(doc)

    # --- readings ---

    def session_patient_id(self, session_id: str) -> Optional[str]:
        with _store_errors("fetch session"):
            doc = self.sessions.find_one({"sessionId": session_id}, {"patientId": 1})
        return doc.get("patientId") if doc else None

    def insert_reading(self, reading_data: Dict) -> str:
        with _store_errors("save reading"):
            result = self.readings.insert_one(dict(reading_data))
        return str(result.inserted_id)

    def sync_session_progress(self, session_id: str, progress: float) -> bool:
        """
        Copy the latest reported progress onto the session.

        Runs separately from ``insert_reading``; a failure here leaves the
        reading stored and the session's progress stale.
        """
        with _store_errors("update session progress"):
            result = self.sessions.update_one(
                {"sessionId": session_id},
                {"$set": {"dialysisProgress": progress}},
            )
        return result.matched_count > 0

    def load_readings(self, session_id: str, since: Optional[datetime] = None,
                      until: Optional[datetime] = None, limit: int = 100) -> List[Dict]:
        query: Dict[str, Any] = {"sessionId": session_id}
        bounds = _time_range(since, until)
        if bounds:
            query["timestamp"] = bounds
        with _store_errors("fetch readings"):
            cursor = self.readings.find(query).sort("timestamp", DESCENDING).limit(limit)
            return [_public(d) for d in cursor]

    # --- reports ---

    def create_report(self, report_data: Dict) -> Dict:
        patient_id = report_data["patientId"]
        doc = {**report_data, "createdAt": utcnow()}
        with _store_errors("save report"):
            return self._insert_with_generated_id(
                self.reports, doc, "reportId", lambda: self.ids.report_id(patient_id)
            )

    def get_report(self, report_id: str) -> Optional[Dict]:
        with _store_errors("fetch report"):
            return _public(self.reports.find_one({"reportId": report_id}))

    def list_reports_for_patient(self, patient_id: str) -> List[Dict]:
        with _store_errors("fetch reports"):
            cursor = self.reports.find({"patientId": patient_id}).sort("timestamp", DESCENDING)
            return [_public(d) for d in cursor]

    # --- analytics ---

    def patient_analytics(self, patient_id: str, since: Optional[datetime] = None,
                          until: Optional[datetime] = None) -> Dict:
        match: Dict[str, Any] = {"patientId": patient_id}
        bounds = _time_range(since, until)
        if bounds:
            match["timestamp"] = bounds
        pipeline = [
            {"$match": match},
            {"$group": {
                "_id": None,
                "avgHeartRate": {"$avg": "$vitalSigns.heartRate"},
                "avgDialysisProgress": {"$avg": "$vitalSigns.dialysisProgress"},
                "avgFlowRate": {"$avg": "$fluidManagement.flowRate"},
                "totalReadings": {"$sum": 1},
                "maxSeismicActivity": {"$max": "$seismic.magnitude"},
            }},
            {"$project": {"_id": 0}},
        ]
        with _store_errors("compute analytics"):
            results = list(self.readings.aggregate(pipeline))
        # Some stores emit a zero-count group row for an empty match
        if not results or not results[0].get("totalReadings"):
            return {}
        return results[0]
