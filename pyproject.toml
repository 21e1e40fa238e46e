[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "quiccore"
version = "0.1.0"
description = "QUIC transport building blocks: range sets, stream receive state, congestion control, loss recovery, rate metering and connection ID management."
requires-python = ">=3.10"
dependencies = []
keywords = ["quic", "congestion-control", "cubic", "reno", "loss-recovery", "transport"]
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
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["quiccore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
