"""Sensor operations behind the HTTP API: queries, light control, thresholds and events."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from .broker import MqttBroker
from .models import (
    ConfirmEventSensorRequest,
    GetLightSensorRequest,
    GetLightSensorResponse,
    GetSensorRequest,
    GetSensorResponse,
    LightReply,
    ListSensorResponse,
    ListThresholdResponse,
    Position,
    PositionOut,
    SensorOut,
    SensorRecord,
    SensorThreshold,
    SetLightSensorRequest,
    SetLightSensorResponse,
    SetPositionSensorRequest,
    SetThresholdSensorRequest,
    ThresholdOut,
    TopicRegisterSensorRequest,
)
from .repository import EventRepository, SensorRepository, ThresholdRepository

LIGHT_SET_REQUEST_TOPIC = "/control/light/request/set/{sensor_id}"
LIGHT_SET_RESPONSE_TOPIC = "/control/light/response/set/{sensor_id}"
LIGHT_GET_REQUEST_TOPIC = "/control/light/request/get/{sensor_id}"
LIGHT_GET_RESPONSE_TOPIC = "/control/light/response/get/{sensor_id}"

LIGHT_QOS = 2
DEFAULT_RESPONSE_TIMEOUT = 5.0

TOPIC_TYPE_LIGHT_SET = "lightSet"
TOPIC_TYPE_LIGHT_GET = "lightGet"

_console = logging.getLogger(__name__)


def _json(data: dict[str, Any]) -> bytes:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def create_threshold(request: SetThresholdSensorRequest) -> SensorThreshold:
    """Build a new threshold document from a request, stamped with the current time."""
    now = datetime.now(timezone.utc)
    return SensorThreshold(
        name=request.name,
        unit=request.unit,
        threshold=request.threshold,
        created_at=now,
        deleted_at=None,
        updated_at=now,
    )


def _position_out(position: Position) -> PositionOut:
    if position == Position():
        return PositionOut()
    return PositionOut(x=position.x, y=position.y)


def _sensor_outs(record: SensorRecord) -> list[SensorOut]:
    return [
        SensorOut(name=sensor.name, value=sensor.value, status=sensor.status, unit=sensor.unit)
        for sensor in record.sensors
    ]


class SensorService:
    """Carries out each API operation against the repositories and the broker."""

    def __init__(
        self,
        sensors: SensorRepository,
        thresholds: ThresholdRepository,
        events: EventRepository,
        broker: MqttBroker,
        response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        self.sensors = sensors
        self.thresholds = thresholds
        self.events = events
        self.broker = broker
        self.response_timeout = response_timeout

    def get_sensor(self, request: GetSensorRequest) -> GetSensorResponse:
        """Return one sensor module with its latest measurements."""
        record = self.sensors.find_one(request.sensor_id)
        measurements = _sensor_outs(record)
        return GetSensorResponse(
            sensor_id=record.sensor_id,
            light_status=record.light_status,
            fire_detector=record.fire_detector,
            position=_position_out(record.position),
            sensors=measurements or None,
        )

    def list_sensors(self) -> ListSensorResponse:
        """Return every stored sensor module."""
        return ListSensorResponse(
            sensor_list=[
                GetSensorResponse(
                    sensor_id=record.sensor_id,
                    light_status=record.light_status,
                    fire_detector=record.fire_detector,
                    position=_position_out(record.position),
                    sensors=_sensor_outs(record),
                )
                for record in self.sensors.find_all()
            ]
        )

    def set_light(self, request: SetLightSensorRequest) -> SetLightSensorResponse:
        """Command a light on or off, wait for the module to answer, then store the status."""
        reply = self.broker.publish_and_wait(
            LIGHT_SET_REQUEST_TOPIC.format(sensor_id=request.sensor_id),
            LIGHT_QOS,
            _json({"status": request.status}),
            str(uuid.uuid4()),
            LIGHT_SET_RESPONSE_TOPIC.format(sensor_id=request.sensor_id),
            self.response_timeout,
        )
        _console.info("Light set response: %s", reply.text)
        self.sensors.set_light_status(request.sensor_id, request.status)
        return SetLightSensorResponse(sensor_id=request.sensor_id, light_status=request.status)

    def get_light(self, request: GetLightSensorRequest) -> GetLightSensorResponse:
        """Ask a module for its light status, store it and return it."""
        reply = self.broker.publish_and_wait(
            LIGHT_GET_REQUEST_TOPIC.format(sensor_id=request.sensor_id),
            LIGHT_QOS,
            _json({}),
            str(uuid.uuid4()),
            LIGHT_GET_RESPONSE_TOPIC.format(sensor_id=request.sensor_id),
            self.response_timeout,
        )
        try:
            light = LightReply.model_validate_json(reply.payload)
        except ValidationError as exc:
            raise ValueError(f"failed to parse response: {exc}") from exc
        self.sensors.record_light_status(request.sensor_id, light.status)
        return GetLightSensorResponse(status=light.status)

    def register_topic(self, request: TopicRegisterSensorRequest) -> None:
        """Subscribe to a light response topic; unknown types are ignored."""
        if request.topic_type in (TOPIC_TYPE_LIGHT_SET, TOPIC_TYPE_LIGHT_GET):
            self.broker.subscribe(request.topic, request.qos, self.broker.deliver_response)

    def set_threshold(self, request: SetThresholdSensorRequest) -> None:
        """Create the threshold or update its value."""
        self.thresholds.upsert(create_threshold(request))

    def list_thresholds(self) -> ListThresholdResponse:
        """Return every threshold, its value truncated to an integer."""
        return ListThresholdResponse(
            threshold_list=[
                ThresholdOut(name=item.name, unit=item.unit, threshold=int(item.threshold))
                for item in self.thresholds.find_all()
            ]
        )

    def set_position(self, request: SetPositionSensorRequest) -> None:
        """Place a sensor on the site map."""
        self.sensors.set_position(request.sensor_id, request.position)

    def confirm_event(self, request: ConfirmEventSensorRequest) -> None:
        """Mark the open danger event of a sensor as confirmed."""
        self.events.confirm(request.sensor_id, request.event_type, request.status)