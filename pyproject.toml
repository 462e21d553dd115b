[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "safemodule"
version = "0.1.0"
description = "HTTP and MQTT service that stores sensor readings in MongoDB, raises safety events and controls sensor lights"
requires-python = ">=3.10"
keywords = ["sensors", "mqtt", "mongodb", "fastapi", "safety", "lighting", "fire-detection"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: FastAPI",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Home Automation",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]
dependencies = [
    "fastapi",
    "pydantic>=2",
    "pymongo",
    "paho-mqtt>=2",
    "uvicorn",
]

[project.optional-dependencies]
test = [
    "pytest",
    "httpx",
]

[project.scripts]
safemodule = "safemodule.api:main"

[tool.hatch.build.targets.wheel]
packages = ["safemodule"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
warn_unused_ignores = true
