"""HTTP API of the sensor service and the command that starts it."""

from __future__ import annotations

import argparse
import logging
from contextlib import ExitStack
from typing import Any, Callable, Sequence

import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from . import applog
from .broker import DEFAULT_HOST, DEFAULT_PORT, BrokerError, MqttBroker
from .database import DEFAULT_URI, connect
from .ingest import SensorDataIngestor
from .models import (
    ConfirmEventSensorRequest,
    GetLightSensorRequest,
    GetSensorRequest,
    RequestValidationFailed,
    SetLightSensorRequest,
    SetPositionSensorRequest,
    SetThresholdSensorRequest,
    TopicRegisterSensorRequest,
    parse_request,
)
from .repository import EventRepository, SensorRepository, ThresholdRepository
from .usecases import SensorService

SENSOR_DATA_TOPIC = "/sensor/datas"
SENSOR_DATA_QOS = 2
DEFAULT_HTTP_PORT = 8080

ALLOWED_METHODS = ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]

_console = logging.getLogger(__name__)


def _error_body(exc: BaseException) -> dict[str, str]:
    return {"message": str(exc)}


def _dump(model: BaseModel) -> Any:
    return model.model_dump(mode="json", by_alias=True)


async def _json_body(request: Request) -> bytes | None:
    raw = await request.body()
    return raw if raw.strip() else None


async def _run(call: Callable[..., Any], *args: Any) -> Any:
    return await run_in_threadpool(call, *args)


def create_app(service: SensorService) -> FastAPI:
    """Build the web application serving the sensor endpoints."""
    app = FastAPI(title="safemodule", docs_url="/swagger", redoc_url=None)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=ALLOWED_METHODS,
    )

    @app.get("/v0.1/sensors", tags=["sensors"], summary="Get one sensor module")
    async def get_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(GetSensorRequest, dict(request.query_params))
        except RequestValidationFailed as exc:
            return JSONResponse(status_code=400, content=_error_body(exc))
        try:
            res = await _run(service.get_sensor, req)
        except Exception as exc:
            return JSONResponse(status_code=500, content=_error_body(exc))
        return JSONResponse(status_code=200, content=_dump(res))

    @app.put("/v0.1/sensors", tags=["sensors"], summary="Set the position of a sensor")
    async def set_position_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(SetPositionSensorRequest, await _json_body(request))
        except RequestValidationFailed:
            return JSONResponse(status_code=400, content=False)
        try:
            await _run(service.set_position, req)
        except Exception:
            return JSONResponse(status_code=500, content=False)
        return JSONResponse(status_code=200, content=True)

    @app.put("/v0.1/sensors/event", tags=["sensors"], summary="Confirm a danger event")
    async def confirm_event_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(ConfirmEventSensorRequest, await _json_body(request))
        except RequestValidationFailed:
            return JSONResponse(status_code=400, content=False)
        try:
            await _run(service.confirm_event, req)
        except Exception:
            return JSONResponse(status_code=500, content=False)
        return JSONResponse(status_code=200, content=True)

    @app.post("/v0.1/sensors/light", tags=["sensors"], summary="Switch a sensor light on or off")
    async def set_light_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(SetLightSensorRequest, await _json_body(request))
        except RequestValidationFailed:
            return JSONResponse(status_code=400, content=False)
        try:
            res = await _run(service.set_light, req)
        except Exception:
            return JSONResponse(status_code=500, content=False)
        return JSONResponse(status_code=200, content=_dump(res))

    @app.get("/v0.1/light/status", tags=["sensors"], summary="Ask a sensor for its light status")
    async def get_light_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(GetLightSensorRequest, dict(request.query_params))
        except RequestValidationFailed as exc:
            return JSONResponse(status_code=400, content=_error_body(exc))
        try:
            res = await _run(service.get_light, req)
        except Exception as exc:
            return JSONResponse(status_code=500, content=_error_body(exc))
        return JSONResponse(status_code=200, content=_dump(res))

    @app.post("/v0.1/topic/register", tags=["sensors"], summary="Subscribe to a response topic")
    async def topic_register_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(TopicRegisterSensorRequest, await _json_body(request))
        except RequestValidationFailed:
            return JSONResponse(status_code=400, content=False)
        try:
            await _run(service.register_topic, req)
        except Exception:
            return JSONResponse(status_code=500, content=False)
        return JSONResponse(status_code=200, content=True)

    @app.get("/v0.1/sensors/list", tags=["sensors"], summary="List every sensor module")
    async def list_sensor() -> JSONResponse:
        try:
            res = await _run(service.list_sensors)
        except Exception as exc:
            return JSONResponse(status_code=500, content=_error_body(exc))
        return JSONResponse(status_code=200, content=_dump(res))

    @app.post("/v0.1/sensors/threshold", tags=["sensors"], summary="Set a sensor threshold")
    async def set_threshold_sensor(request: Request) -> JSONResponse:
        try:
            req = parse_request(SetThresholdSensorRequest, await _json_body(request))
        except RequestValidationFailed:
            return JSONResponse(status_code=400, content=False)
        try:
            await _run(service.set_threshold, req)
        except Exception:
            return JSONResponse(status_code=500, content=False)
        return JSONResponse(status_code=200, content=True)

    @app.get("/v0.1/sensors/threshold/list", tags=["sensors"], summary="List sensor thresholds")
    async def list_threshold_sensor() -> JSONResponse:
        try:
            res = await _run(service.list_thresholds)
        except Exception as exc:
            return JSONResponse(status_code=500, content=_error_body(exc))
        return JSONResponse(status_code=200, content=_dump(res))

    return app


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="safemodule", description="Serve the sensor module HTTP API."
    )
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_HTTP_PORT, help="HTTP port")
    parser.add_argument("--mongo-uri", default=DEFAULT_URI, help="MongoDB connection URI")
    parser.add_argument("--mqtt-host", default=DEFAULT_HOST, help="MQTT broker host")
    parser.add_argument("--mqtt-port", type=int, default=DEFAULT_PORT, help="MQTT broker port")
    parser.add_argument(
        "--log-to-db", action="store_true", help="write the application log to MongoDB"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Connect to MongoDB and the MQTT broker, then serve the API."""
    args = _parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    with ExitStack() as stack:
        try:
            database = connect(args.mongo_uri)
        except PyMongoError as exc:
            print(exc)
            return 1
        stack.callback(database.close)

        try:
            applog.init_logger(use_db=args.log_to_db, collection=database.logs)
        except OSError as exc:
            print(f"failed to start logger: {exc}")
            return 1
        stack.callback(applog.close_logger)

        broker = MqttBroker()
        try:
            broker.connect(args.mqtt_host, args.mqtt_port)
        except BrokerError as exc:
            print(exc)
            return 1
        stack.callback(broker.close)

        ingestor = SensorDataIngestor(database.sensors, database.sensor_events)
        try:
            broker.subscribe(SENSOR_DATA_TOPIC, SENSOR_DATA_QOS, ingestor.handle)
        except BrokerError as exc:
            _console.error("%s", exc)

        service = SensorService(
            SensorRepository(database.sensors),
            ThresholdRepository(database.sensor_threshold),
            EventRepository(database.sensor_events),
            broker,
        )
        app = create_app(service)
        _console.info("Server is starting on port %d...", args.port)
        uvicorn.run(app, host=args.host, port=args.port)
    return 0