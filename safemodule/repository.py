"""MongoDB access for sensors, thresholds and danger events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from .models import SensorRecord, SensorThreshold


class SensorNotFound(LookupError):
    """No sensor document matches the requested sensor id."""

    def __init__(self, sensor_id: str) -> None:
        super().__init__(f"no sensor found with sensorID: {sensor_id}")
        self.sensor_id = sensor_id


class EventNotFound(LookupError):
    """No unconfirmed event matches the requested sensor, type and status."""

    def __init__(self, sensor_id: str, event_type: str, status: str) -> None:
        super().__init__(
            f"no document found with sensorID: {sensor_id}, type: {event_type}, status: {status}"
        )
        self.sensor_id = sensor_id
        self.event_type = event_type
        self.status = status


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SensorRepository:
    """Reads and updates documents in the sensors collection."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def find_one(self, sensor_id: str) -> SensorRecord:
        """Return the sensor with ``sensor_id``; raise SensorNotFound if there is none."""
        document = self.collection.find_one({"sensorID": sensor_id})
        if document is None:
            raise SensorNotFound(sensor_id)
        return SensorRecord.from_document(document)

    def find_all(self) -> list[SensorRecord]:
        """Return every stored sensor."""
        return [SensorRecord.from_document(document) for document in self.collection.find({})]

    def set_light_status(self, sensor_id: str, status: str) -> int:
        """Store the light status that was just commanded; return how many sensors matched."""
        result = self.collection.update_one(
            {"sensorID": sensor_id}, {"$set": {"lightStatus": status}}
        )
        return result.matched_count

    def record_light_status(self, sensor_id: str, status: str) -> int:
        """Store a light status reported by the module and stamp the update time."""
        result = self.collection.update_one(
            {"sensorID": sensor_id},
            {"$set": {"lightStatus": status, "updatedAt": _now()}},
        )
        return result.matched_count

    def set_position(self, sensor_id: str, position: Any) -> int:
        """Move a sensor on the site map; return how many sensors matched."""
        result = self.collection.update_one(
            {"sensorID": sensor_id},
            {"$set": {"position": {"x": float(position.x), "y": float(position.y)}}},
        )
        return result.matched_count


class ThresholdRepository:
    """Reads and updates documents in the sensor threshold collection."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def upsert(self, threshold: SensorThreshold) -> bool:
        """Insert the threshold, or update only its value if the name exists.

        Returns True when a new document was created.
        """
        query = {"name": threshold.name}
        if self.collection.find_one(query) is None:
            self.collection.insert_one(threshold.to_document())
            return True
        self.collection.update_one(query, {"$set": {"threshold": threshold.threshold}})
        return False

    def find_all(self) -> list[SensorThreshold]:
        """Return every stored threshold."""
        return [SensorThreshold.from_document(document) for document in self.collection.find({})]


class EventRepository:
    """Updates documents in the sensor events collection."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def confirm(self, sensor_id: str, event_type: str, status: str) -> None:
        """Mark the open event as confirmed; raise EventNotFound if none is open."""
        result = self.collection.update_one(
            {
                "sensorID": sensor_id,
                "type": event_type,
                "status": status,
                "confirmed": False,
            },
            {"$set": {"confirmed": True, "updatedAt": _now()}},
        )
        if result.matched_count == 0:
            raise EventNotFound(sensor_id, event_type, status)