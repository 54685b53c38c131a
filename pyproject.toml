[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pleco"
version = "0.1.0"
description = "Onboard software for a remote-controlled vehicle: control board link, camera controls, media pipelines, system statistics and a UDP relay"
requires-python = ">=3.10"
dependencies = []
keywords = ["robot", "rover", "udp", "relay", "serial", "v4l2", "gstreamer", "telemetry"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pleco-netrelay = "pleco.relay:main"

[tool.hatch.build.targets.wheel]
packages = ["pleco"]

[tool.pytest.ini_options]
addopts = "-ra"
