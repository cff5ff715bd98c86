[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "potnet"
version = "0.5.0"
description = "Command line utilities for the pot jail framework: network addressing and CPU allocation"
requires-python = ">=3.10"
keywords = ["FreeBSD", "pot", "jail", "network", "cpuset"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: BSD :: FreeBSD",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Topic :: System :: Systems Administration",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
potnet = "potnet.cli:main"
potcpu = "potnet.potcpu:main"

[tool.hatch.build.targets.wheel]
packages = ["potnet"]

[tool.pytest.ini_options]
addopts = "-ra"
