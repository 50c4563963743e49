[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "teamsync"
version = "0.1.0"
description = "Synchronise team membership data with Zulip user groups and streams"
requires-python = ">=3.10"
keywords = ["zulip", "teams", "synchronisation", "user-groups", "streams"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "requests>=2.28",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "responses>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["teamsync"]

[tool.pytest.ini_options]
addopts = "-ra"
