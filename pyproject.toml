[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "slimnode"
version = "0.1.0"
description = "Block-file tooling for a storage-light Bitcoin node: blockmaps, a per-block disk cache, configuration and daemon helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["bitcoin", "blockchain", "blk files", "blockmap", "cache", "full node"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["slimnode"]

[tool.pytest.ini_options]
addopts = "-ra"
