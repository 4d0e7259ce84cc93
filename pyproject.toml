[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "labkit"
version = "0.1.0"
description = "A simulated RPC network, a deduplicating key/value server and a small MapReduce framework for distributed-systems experiments."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "distributed-systems",
    "mapreduce",
    "rpc",
    "key-value",
    "simulation",
    "fault-tolerance",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mrcoordinator = "labkit.mapreduce.coordinator:main"
mrworker = "labkit.mapreduce.worker:main"
mrsequential = "labkit.mapreduce.sequential:main"

[tool.hatch.build.targets.wheel]
packages = ["labkit"]

[tool.pytest.ini_options]
addopts = "-ra"
