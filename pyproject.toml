[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "couloykv"
version = "0.1.0"
description = "Building blocks of a Redis-compatible key-value server: RESP protocol, TCP serving, command dispatch, expiry, key watching and transaction timestamps."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "key-value",
    "database",
    "redis",
    "resp",
    "ttl",
    "watch",
    "server",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["couloykv"]

[tool.hatch.build.targets.sdist]
include = ["couloykv", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
