"""MongoDB connection and the collections the service uses."""

from __future__ import annotations

import logging
from typing import Any

from pymongo import MongoClient

DB_NAME = "safe_module"
LOGS_COLLECTION = "logs"
LIGHTS_COLLECTION = "lights"
SENSORS_COLLECTION = "sensors"
SENSOR_THRESHOLD_COLLECTION = "sensor_threshold"
SENSOR_EVENTS_COLLECTION = "sensor_events"

DEFAULT_URI = "mongodb://localhost:27017"

_console = logging.getLogger(__name__)


class Database:
    """A connected client together with the service's collections."""

    def __init__(self, client: Any, name: str = DB_NAME) -> None:
        self.client = client
        self.db = client[name]
        self.logs = self.db[LOGS_COLLECTION]
        self.lights = self.db[LIGHTS_COLLECTION]
        self.sensors = self.db[SENSORS_COLLECTION]
        self.sensor_threshold = self.db[SENSOR_THRESHOLD_COLLECTION]
        self.sensor_events = self.db[SENSOR_EVENTS_COLLECTION]

    def close(self) -> None:
        self.client.close()
        _console.info("MongoDB connection closed.")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def connect(uri: str = DEFAULT_URI, timeout: float = 10.0) -> Database:
    """Connect to MongoDB, check the server answers, and return the database."""
    client = MongoClient(uri, serverSelectionTimeoutMS=int(timeout * 1000))
    try:
        client.admin.command("ping")
    except Exception:
        client.close()
        raise
    _console.info("Connected to MongoDB at %s", uri)
    return Database(client)