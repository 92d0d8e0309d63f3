[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "stratumpool"
version = "0.1.0"
description = "An asyncio Stratum mining server with JSON-RPC messages, miner sessions and coinbase construction"
requires-python = ">=3.10"
dependencies = []
keywords = ["stratum", "mining", "bitcoin", "json-rpc", "pool", "coinbase"]
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
    "Framework :: AsyncIO",
    "Topic :: Internet",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["stratumpool"]

[tool.pytest.ini_options]
addopts = "-ra"
