"""Sensor monitoring service: MQTT ingestion into MongoDB, safety events and an HTTP API."""

__version__ = "0.1.0"