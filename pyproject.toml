[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vdetunnel"
version = "0.1.0"
description = "Tunnel virtual Ethernet frames over DNS queries and TXT answers"
requires-python = ">=3.10"
dependencies = []
keywords = ["dns", "tunnel", "ethernet", "virtual-network", "txt-records"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
vdetunnel = "vdetunnel.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["vdetunnel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
