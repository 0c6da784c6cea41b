[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "torrentkit"
version = "0.1.0"
description = "BitTorrent building blocks: bencode, .torrent metainfo parsing, peer wire messages and HTTP/UDP tracker clients"
requires-python = ">=3.10"
keywords = ["bittorrent", "bencode", "torrent", "tracker", "peer-to-peer", "udp", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Framework :: AsyncIO",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[project.scripts]
torrentkit = "torrentkit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["torrentkit"]

[tool.hatch.build.targets.sdist]
include = ["torrentkit", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
