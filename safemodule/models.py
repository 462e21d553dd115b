"""Stored documents, request bodies and response bodies of the sensor service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


# --------------------------------------------------------------------------
# Stored documents
# --------------------------------------------------------------------------


@dataclass
class Position:
    """Position of a sensor on the site map."""

    x: float = 0.0
    y: float = 0.0

    def to_document(self) -> dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "Position":
        document = document or {}
        return cls(x=float(document.get("x", 0.0)), y=float(document.get("y", 0.0)))


@dataclass
class Sensor:
    """One measurement reported by a sensor module."""

    name: str = ""
    value: float = 0.0
    status: str = ""
    unit: str = ""

    def to_document(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "status": self.status, "unit": self.unit}

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "Sensor":
        document = document or {}
        return cls(
            name=document.get("name", ""),
            value=float(document.get("value", 0.0)),
            status=document.get("status", ""),
            unit=document.get("unit", ""),
        )


@dataclass
class SensorRecord:
    """A sensor module as stored in the sensors collection."""

    sensor_id: str = ""
    light_status: str = ""
    fire_detector: str = ""
    position: Position = field(default_factory=Position)
    sensors: list[Sensor] = field(default_factory=list)
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    updated_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "sensorID": self.sensor_id,
            "lightStatus": self.light_status,
            "fireDetector": self.fire_detector,
            "position": self.position.to_document(),
            "sensors": [sensor.to_document() for sensor in self.sensors],
            "createdAt": self.created_at,
            "deletedAt": self.deleted_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "SensorRecord":
        document = document or {}
        return cls(
            sensor_id=document.get("sensorID", ""),
            light_status=document.get("lightStatus", ""),
            fire_detector=document.get("fireDetector", ""),
            position=Position.from_document(document.get("position")),
            sensors=[Sensor.from_document(item) for item in document.get("sensors") or []],
            created_at=document.get("createdAt"),
            deleted_at=document.get("deletedAt"),
            updated_at=document.get("updatedAt"),
        )


@dataclass
class SensorThreshold:
    """Alarm threshold for one kind of measurement."""

    name: str = ""
    unit: str = ""
    threshold: float = 0.0
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    updated_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "unit": self.unit,
            "threshold": self.threshold,
            "createdAt": self.created_at,
            "deletedAt": self.deleted_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "SensorThreshold":
        document = document or {}
        return cls(
            name=document.get("name", ""),
            unit=document.get("unit", ""),
            threshold=float(document.get("threshold", 0.0)),
            created_at=document.get("createdAt"),
            deleted_at=document.get("deletedAt"),
            updated_at=document.get("updatedAt"),
        )


@dataclass
class SensorEvent:
    """A danger event raised by a sensor module, awaiting confirmation."""

    event_type: str = ""
    status: str = ""
    sensor_id: str = ""
    confirmed: bool = False
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    updated_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "status": self.status,
            "sensorID": self.sensor_id,
            "confirmed": self.confirmed,
            "createdAt": self.created_at,
            "deletedAt": self.deleted_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any] | None) -> "SensorEvent":
        document = document or {}
        return cls(
            event_type=document.get("type", ""),
            status=document.get("status", ""),
            sensor_id=document.get("sensorID", ""),
            confirmed=bool(document.get("confirmed", False)),
            created_at=document.get("createdAt"),
            deleted_at=document.get("deletedAt"),
            updated_at=document.get("updatedAt"),
        )


# --------------------------------------------------------------------------
# Validation
# --------------------------------------------------------------------------


class RequestValidationFailed(ValueError):
    """A request body or query could not be bound or failed validation."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_request(model: type[ModelT], data: Any) -> ModelT:
    """Bind ``data`` (a mapping or a JSON document) to ``model`` and validate it."""
    try:
        if isinstance(data, (str, bytes, bytearray)):
            return model.model_validate_json(data)
        return model.model_validate({} if data is None else data)
    except ValidationError as exc:
        raise RequestValidationFailed(str(exc), exc.errors()) from exc


def _required_number(value: float) -> float:
    if value == 0:
        raise ValueError("value is required and must not be zero")
    return value


# --------------------------------------------------------------------------
# Requests
# --------------------------------------------------------------------------


class ConfirmEventSensorRequest(_Model):
    sensor_id: str = Field(alias="sensor_id", min_length=1)
    event_type: str = Field(alias="type", min_length=1)
    status: str = Field(alias="status", min_length=1)


class GetSensorRequest(_Model):
    sensor_id: str = Field(alias="sensorID", min_length=1)


class GetLightSensorRequest(_Model):
    sensor_id: str = Field(alias="sensorID", min_length=1)


class SetLightSensorRequest(_Model):
    sensor_id: str = Field(default="", alias="sensorID")
    status: str = ""


class PositionRequest(_Model):
    x: float
    y: float

    _check_nonzero = field_validator("x", "y")(_required_number)


class SetPositionSensorRequest(_Model):
    sensor_id: str = Field(alias="sensorID", min_length=1)
    position: PositionRequest


class SetThresholdSensorRequest(_Model):
    name: str = ""
    threshold: float = 0.0
    unit: str = ""


class TopicRegisterSensorRequest(_Model):
    topic: str = ""
    qos: int = 0
    topic_type: str = Field(default="", alias="type")


# --------------------------------------------------------------------------
# Responses
# --------------------------------------------------------------------------


class PositionOut(_Model):
    x: float = 0.0
    y: float = 0.0


class SensorOut(_Model):
    name: str = ""
    value: float = 0.0
    status: str = ""
    unit: str = ""


class GetSensorResponse(_Model):
    sensor_id: str = Field(default="", alias="sensorID")
    light_status: str = Field(default="", alias="lightStatus")
    fire_detector: str = Field(default="", alias="fireDetector")
    position: PositionOut = Field(default_factory=PositionOut)
    sensors: list[SensorOut] | None = None


class ListSensorResponse(_Model):
    sensor_list: list[GetSensorResponse] = Field(default_factory=list, alias="sensorList")


class SetLightSensorResponse(_Model):
    sensor_id: str = Field(default="", alias="sensorID")
    light_status: str = Field(default="", alias="lightStatus")


class GetLightSensorResponse(_Model):
    status: str = ""


class LightReply(_Model):
    """Payload a light module sends back on its response topic."""

    status: str = ""


class ThresholdOut(_Model):
    name: str = ""
    unit: str = ""
    threshold: int = 0


class ListThresholdResponse(_Model):
    threshold_list: list[ThresholdOut] = Field(default_factory=list, alias="thresholdList")