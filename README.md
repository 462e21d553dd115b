# safemodule

A service for a building safety installation. Sensor units publish their
readings over MQTT; the service keeps the latest state of every unit in
MongoDB, records safety events when a light shuts down or a fire detector
triggers, and offers an HTTP API for reading sensor state, switching lights,
placing sensors on a floor plan, setting alarm thresholds and confirming
events.

## Running

```
safemodule
```

The command connects to MongoDB, starts the application log, connects to the
MQTT broker, subscribes to `/sensor/datas` (QoS 2) and serves the HTTP API.
If MongoDB or the broker cannot be reached it prints the error and exits
with status 1.

Options:

| Option         | Default                     | Meaning                                  |
|----------------|-----------------------------|------------------------------------------|
| `--host`       | `0.0.0.0`                   | address the HTTP server listens on       |
| `--port`       | `8080`                      | HTTP port                                |
| `--mongo-uri`  | `mongodb://localhost:27017` | MongoDB connection URI                   |
| `--mqtt-host`  | `192.168.0.6`               | MQTT broker host                         |
| `--mqtt-port`  | `1883`                      | MQTT broker port                         |
| `--log-to-db`  | off                         | write the application log to MongoDB     |

Interactive API documentation is served at `/swagger`.

## Data stored

Everything lives in the `safe_module` database (`safemodule.database`):

| Collection         | Contents                                                 |
|--------------------|----------------------------------------------------------|
| `sensors`          | latest reading, light status and position of each unit   |
| `sensor_threshold` | alarm threshold per measurement name                     |
| `sensor_events`    | light and fire events, with their confirmation state     |
| `logs`             | application log entries, with `--log-to-db`              |

## Application log

`safemodule.applog.AppLogger` queues entries (up to 1000; further entries are
dropped with a warning) and writes them from a background thread. By default
each entry is written as a JSON line to `logs/app_<YYYY-MM-DD>.log`. With
`--log-to-db` entries are inserted into the `logs` collection in batches of
100, or every 5 seconds, whichever comes first. `init_logger`, `log` and
`close_logger` manage one process-wide logger.

## HTTP API

| Method | Path                              | Body / query                                  | Success answer                        |
|--------|-----------------------------------|-----------------------------------------------|---------------------------------------|
| GET    | `/v0.1/sensors`                   | query `sensorID` (required)                   | the unit's state                      |
| GET    | `/v0.1/sensors/list`              | —                                             | `{"sensorList": [...]}`               |
| PUT    | `/v0.1/sensors`                   | `sensorID`, `position.x`, `position.y`        | `true`                                |
| POST   | `/v0.1/sensors/light`             | `sensorID`, `status`                          | `{"sensorID": ..., "lightStatus": ...}` |
| GET    | `/v0.1/light/status`              | query `sensorID` (required)                   | `{"status": ...}`                     |
| POST   | `/v0.1/sensors/threshold`         | `name`, `threshold`, `unit`                   | `true`                                |
| GET    | `/v0.1/sensors/threshold/list`    | —                                             | `{"thresholdList": [...]}`            |
| PUT    | `/v0.1/sensors/event`             | `sensor_id`, `type`, `status` (all required)  | `true`                                |
| POST   | `/v0.1/topic/register`            | `topic`, `qos`, `type` (`lightSet` or `lightGet`) | `true`                            |

A sensor's state holds `sensorID`, `lightStatus`, `fireDetector`, `position`
(`x`, `y`) and `sensors` (each with `name`, `value`, `status`, `unit`).
For a single unit `sensors` is `null` when it has no measurements. For the
position request both `x` and `y` must be present and non-zero. Threshold
values are listed truncated to whole numbers. Setting a threshold for a name
that already exists changes only its value.

Invalid requests are answered with status 400 and failures in the broker or
database with status 500. The GET endpoints then answer with
`{"message": "..."}`; the other endpoints answer `false`.

### Light control

Light commands are published (QoS 2, with correlation data and a response
topic) to `/control/light/request/set/<sensorID>` and
`/control/light/request/get/<sensorID>`. The unit answers on the matching
`/control/light/response/set/<sensorID>` or
`/control/light/response/get/<sensorID>` topic, which must first be
registered through `/v0.1/topic/register` so that answers reach the waiting
request. A command that gets no answer within five seconds fails with status
500. After an answer, the light status is stored on the sensor document.

## Sensor messages

A unit reports on `/sensor/datas` with a JSON body such as:

```json
{
  "sensor_id": "sensor-0001",
  "booting_time": 120,
  "fire_detector": "normal",
  "light_status": "on",
  "sensor_list": [
    {"name": "co2", "status": "normal", "value": 412.0, "unit": "ppm", "raw_data": [1, 2]}
  ]
}
```

`safemodule.ingest.SensorDataIngestor` upserts each report into `sensors`,
keeping the stored creation time and position of a known unit. A
`light_status` of `shutdown` opens a light event and a `fire_detector` of
`detection` opens a fire event, unless an unconfirmed event of the same kind
and status is already open for that unit. Reports that cannot be parsed are
logged and dropped.

## Embedding

The web application can be built around your own service object:

```python
from safemodule.api import create_app
from safemodule.broker import MqttBroker
from safemodule.database import connect
from safemodule.repository import EventRepository, SensorRepository, ThresholdRepository
from safemodule.usecases import SensorService

database = connect("mongodb://localhost:27017")
broker = MqttBroker()
broker.connect("localhost", 1883)
service = SensorService(
    SensorRepository(database.sensors),
    ThresholdRepository(database.sensor_threshold),
    EventRepository(database.sensor_events),
    broker,
)
app = create_app(service)
```

## Limits

There is no authentication on the HTTP API, and CORS allows every origin.
The `lights` collection is opened but nothing is stored in it. Sensor thresholds
are only stored and listed; incoming readings are not compared with them.