[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "remotefs"
version = "0.1.0"
description = "Keep a directory mirrored between a server and its clients over TCP"
requires-python = ">=3.10"
keywords = ["sync", "mirror", "filesystem", "watcher", "tcp"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Framework :: AsyncIO",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Mirroring",
    "Topic :: System :: Filesystems",
]
dependencies = [
    "watchdog",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
remotefs = "remotefs.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["remotefs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
