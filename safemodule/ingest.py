"""Stores sensor reports arriving over MQTT and raises danger events."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pymongo.errors import PyMongoError

from . import applog
from .applog import LogLevel
from .broker import Message
from .models import Position, Sensor, SensorEvent, SensorRecord

LIGHT_DANGER_STATUS = "shutdown"
FIRE_DANGER_STATUS = "detection"


class SensorPayloadError(ValueError):
    """A sensor report could not be parsed."""


class _SensorReading(BaseModel):
    model_config = ConfigDict(strict=True)

    name: str = ""
    status: str = ""
    value: float = 0.0
    unit: str = ""
    raw_data: list[int] | None = None


class _SensorData(BaseModel):
    model_config = ConfigDict(strict=True)

    sensor_id: str = ""
    booting_time: int = 0
    fire_detector: str = ""
    light_status: str = ""
    sensor_list: list[_SensorReading] | None = None


def parse_sensor_payload(payload: str | bytes) -> SensorRecord:
    """Turn the JSON report of a sensor module into a record."""
    try:
        data = _SensorData.model_validate_json(payload)
    except ValidationError as exc:
        raise SensorPayloadError(str(exc)) from exc
    return SensorRecord(
        sensor_id=data.sensor_id,
        light_status=data.light_status,
        fire_detector=data.fire_detector,
        sensors=[
            Sensor(name=item.name, value=item.value, status=item.status, unit=item.unit)
            for item in data.sensor_list or []
        ],
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SensorDataIngestor:
    """Upserts each report into the sensors collection and records danger events."""

    def __init__(self, sensors: Any, events: Any, logger: Any = None) -> None:
        self.sensors = sensors
        self.events = events
        self._log = logger.log if logger is not None else applog.log

    def handle(self, message: Message) -> SensorRecord | None:
        """Store one report; return the stored record, or None if it was dropped."""
        self._log(LogLevel.INFO, "Received message on topic!!", {"payload": message.text})
        try:
            record = parse_sensor_payload(message.payload)
        except SensorPayloadError as exc:
            self._log(LogLevel.ERROR, "Failed to parse sensor data", {"error": str(exc)})
            return None

        now = _now()
        query = {"sensorID": record.sensor_id}
        try:
            existing = self.sensors.find_one(query)
        except PyMongoError as exc:
            self._log(LogLevel.ERROR, "Failed to check existing document", {"error": str(exc)})
            return None
        if existing is None:
            record.created_at = now
        else:
            record.created_at = existing.get("createdAt")
            record.position = Position.from_document(existing.get("position"))
        record.updated_at = now

        try:
            self.sensors.update_one(query, {"$set": record.to_document()}, upsert=True)
        except PyMongoError as exc:
            self._log(LogLevel.ERROR, "Failed to save sensor data to MongoDB", {"error": str(exc)})
            return None

        if record.light_status == LIGHT_DANGER_STATUS:
            self.raise_light_event(record)
        if record.fire_detector == FIRE_DANGER_STATUS:
            self.raise_fire_event(record)

        self._log(LogLevel.INFO, "Successfully saved sensor data", {"sensorID": record.sensor_id})
        return record

    def raise_light_event(self, record: SensorRecord) -> bool:
        """Record an unconfirmed light event unless one is already open."""
        return self._raise_event("light", record.light_status, record.sensor_id)

    def raise_fire_event(self, record: SensorRecord) -> bool:
        """Record an unconfirmed fire event unless one is already open."""
        return self._raise_event("fire", record.fire_detector, record.sensor_id)

    def _raise_event(self, event_type: str, status: str, sensor_id: str) -> bool:
        now = _now()
        event = SensorEvent(
            event_type=event_type,
            status=status,
            sensor_id=sensor_id,
            confirmed=False,
            created_at=now,
            updated_at=now,
        )
        query = {
            "type": event.event_type,
            "status": event.status,
            "sensorID": event.sensor_id,
            "confirmed": event.confirmed,
        }
        try:
            if self.events.find_one(query) is not None:
                return False
        except PyMongoError as exc:
            self._log(LogLevel.ERROR, "Failed to check existing sensor event", {"error": str(exc)})
            return False
        try:
            self.events.insert_one(event.to_document())
        except PyMongoError as exc:
            self._log(LogLevel.ERROR, "Failed to create sensor event", {"error": str(exc)})
            return False
        return True