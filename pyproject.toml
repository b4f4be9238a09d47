[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "habitat-node"
version = "0.1.0"
description = "Core of a Habitat node: JSON state kept valid by patches, a state machine over a replicator, node configuration, app store listing and admin HTTP routes."
requires-python = ">=3.10"
keywords = ["habitat", "json-patch", "state-machine", "replication", "node"]
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
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pyyaml",
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["habitat_node"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
