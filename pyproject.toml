[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vibespace"
version = "0.1.0"
description = "Vibes, worlds and world-moment streaming to NATS, with access control and JSON-RPC method helpers"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "vibes",
    "worlds",
    "nats",
    "streaming",
    "json-rpc",
    "balanced-ternary",
    "access-control",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vibespace"]

[tool.hatch.build.targets.sdist]
include = ["vibespace", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
