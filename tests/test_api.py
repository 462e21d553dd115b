import copy
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from safemodule.api import create_app, main
from safemodule.broker import Message, ResponseTimeout
from safemodule.repository import EventRepository, SensorRepository, ThresholdRepository
from safemodule.usecases import SensorService


@dataclass
class _UpdateResult:
    matched_count: int


def _matches(document, query):
    return all(document.get(key) == value for key, value in query.items())


class FakeCollection:
    def __init__(self, documents=None):
        self.documents = [copy.deepcopy(doc) for doc in documents or []]

    def find_one(self, query):
        for document in self.documents:
            if _matches(document, query):
                return copy.deepcopy(document)
        return None

    def find(self, query):
        return [copy.deepcopy(doc) for doc in self.documents if _matches(doc, query)]

    def insert_one(self, document):
        self.documents.append(copy.deepcopy(document))

    def update_one(self, query, update, upsert=False):
        for document in self.documents:
            if _matches(document, query):
                document.update(copy.deepcopy(update["$set"]))
                return _UpdateResult(1)
        if upsert:
            new = dict(query)
            new.update(copy.deepcopy(update["$set"]))
            self.documents.append(new)
        return _UpdateResult(0)


class FakeBroker:
    def __init__(self, reply=b"{}"):
        self.reply = reply
        self.published = []
        self.subscribed = []

    def publish_and_wait(self, topic, qos, payload, correlation_id, response_topic, timeout):
        self.published.append((topic, qos, payload, response_topic))
        if self.reply is None:
            raise ResponseTimeout("timeout waiting for response")
        return Message(
            topic=response_topic,
            payload=self.reply,
            correlation_data=correlation_id.encode(),
        )

    def subscribe(self, topic, qos, handler):
        self.subscribed.append((topic, qos))

    def deliver_response(self, message):
        return False


SENSOR_DOC = {
    "sensorID": "sensor-a",
    "lightStatus": "on",
    "fireDetector": "normal",
    "position": {"x": 1.5, "y": 2.5},
    "sensors": [{"name": "co2", "value": 420.0, "status": "normal", "unit": "ppm"}],
}


@pytest.fixture
def env():
    sensors = FakeCollection([SENSOR_DOC])
    thresholds = FakeCollection()
    events = FakeCollection()
    broker = FakeBroker()
    service = SensorService(
        SensorRepository(sensors),
        ThresholdRepository(thresholds),
        EventRepository(events),
        broker,
    )
    client = TestClient(create_app(service))
    return client, sensors, thresholds, events, broker


def test_get_sensor_returns_stored_module(env):
    client, *_ = env
    response = client.get("/v0.1/sensors", params={"sensorID": "sensor-a"})
    assert response.status_code == 200
    body = response.json()
    assert body["sensorID"] == "sensor-a"
    assert body["lightStatus"] == "on"
    assert body["position"] == {"x": 1.5, "y": 2.5}
    assert body["sensors"] == SENSOR_DOC["sensors"]


def test_get_sensor_without_id_is_bad_request(env):
    client, *_ = env
    response = client.get("/v0.1/sensors")
    assert response.status_code == 400


def test_get_unknown_sensor_is_server_error(env):
    client, *_ = env
    response = client.get("/v0.1/sensors", params={"sensorID": "missing"})
    assert response.status_code == 500
    assert "missing" in response.json()["message"]


def test_list_sensors(env):
    client, *_ = env
    response = client.get("/v0.1/sensors/list")
    assert response.status_code == 200
    listing = response.json()["sensorList"]
    assert [item["sensorID"] for item in listing] == ["sensor-a"]


def test_set_light_publishes_and_stores_status(env):
    client, sensors, _, _, broker = env
    response = client.post("/v0.1/sensors/light", json={"sensorID": "sensor-a", "status": "off"})
    assert response.status_code == 200
    assert response.json() == {"sensorID": "sensor-a", "lightStatus": "off"}
    assert broker.published[0][0] == "/control/light/request/set/sensor-a"
    assert broker.published[0][3] == "/control/light/response/set/sensor-a"
    assert sensors.find_one({"sensorID": "sensor-a"})["lightStatus"] == "off"


def test_set_light_timeout_is_server_error(env):
    client, sensors, _, _, broker = env
    broker.reply = None
    response = client.post("/v0.1/sensors/light", json={"sensorID": "sensor-a", "status": "off"})
    assert response.status_code == 500
    assert response.json() is False
    assert sensors.find_one({"sensorID": "sensor-a"})["lightStatus"] == "on"


def test_set_light_with_malformed_body_is_bad_request(env):
    client, *_ = env
    response = client.post(
        "/v0.1/sensors/light",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json() is False


def test_get_light_status_stores_reported_status(env):
    client, sensors, _, _, broker = env
    broker.reply = b'{"status":"off"}'
    response = client.get("/v0.1/light/status", params={"sensorID": "sensor-a"})
    assert response.status_code == 200
    assert response.json() == {"status": "off"}
    assert broker.published[0][0] == "/control/light/request/get/sensor-a"
    assert sensors.find_one({"sensorID": "sensor-a"})["lightStatus"] == "off"


def test_threshold_round_trip(env):
    client, _, thresholds, _, _ = env
    response = client.post(
        "/v0.1/sensors/threshold", json={"name": "co2", "threshold": 3000, "unit": "ppm"}
    )
    assert response.status_code == 200
    assert response.json() is True
    listing = client.get("/v0.1/sensors/threshold/list")
    assert listing.status_code == 200
    assert listing.json() == {"thresholdList": [{"name": "co2", "unit": "ppm", "threshold": 3000}]}
    assert len(thresholds.documents) == 1


def test_set_position_updates_sensor(env):
    client, sensors, *_ = env
    response = client.put(
        "/v0.1/sensors", json={"sensorID": "sensor-a", "position": {"x": 7.0, "y": 8.0}}
    )
    assert response.status_code == 200
    assert response.json() is True
    assert sensors.find_one({"sensorID": "sensor-a"})["position"] == {"x": 7.0, "y": 8.0}


@pytest.mark.parametrize(
    "body",
    [
        {"sensorID": "sensor-a"},
        {"sensorID": "sensor-a", "position": {"x": 0, "y": 3.0}},
        {"position": {"x": 1.0, "y": 3.0}},
    ],
)
def test_set_position_rejects_invalid_body(env, body):
    client, sensors, *_ = env
    response = client.put("/v0.1/sensors", json=body)
    assert response.status_code == 400
    assert sensors.find_one({"sensorID": "sensor-a"})["position"] == {"x": 1.5, "y": 2.5}


def test_confirm_open_event(env):
    client, _, _, events, _ = env
    events.insert_one({"type": "fire", "status": "detection", "sensorID": "sensor-a", "confirmed": False})
    response = client.put(
        "/v0.1/sensors/event",
        json={"sensor_id": "sensor-a", "type": "fire", "status": "detection"},
    )
    assert response.status_code == 200
    assert events.documents[0]["confirmed"] is True


def test_confirm_without_open_event_is_server_error(env):
    client, *_ = env
    response = client.put(
        "/v0.1/sensors/event",
        json={"sensor_id": "sensor-a", "type": "fire", "status": "detection"},
    )
    assert response.status_code == 500
    assert response.json() is False


def test_confirm_missing_fields_is_bad_request(env):
    client, *_ = env
    response = client.put("/v0.1/sensors/event", json={"sensor_id": "sensor-a"})
    assert response.status_code == 400


def test_register_topic_subscribes(env):
    client, _, _, _, broker = env
    topic = "/control/light/response/set/sensor-a"
    response = client.post("/v0.1/topic/register", json={"topic": topic, "qos": 2, "type": "lightSet"})
    assert response.status_code == 200
    assert response.json() is True
    assert broker.subscribed == [(topic, 2)]


def test_register_unknown_type_subscribes_nothing(env):
    client, _, _, _, broker = env
    response = client.post("/v0.1/topic/register", json={"topic": "/x", "qos": 1, "type": "other"})
    assert response.status_code == 200
    assert broker.subscribed == []


def test_cors_allows_any_origin(env):
    client, *_ = env
    response = client.options(
        "/v0.1/sensors",
        headers={"Origin": "http://example.com", "Access-Control-Request-Method": "PUT"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_main_help_exits_cleanly():
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0