[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mpslave"
version = "0.1.0"
description = "Control logic for a media player driven through its slave-mode text interface"
requires-python = ">=3.10"
dependencies = []
keywords = ["mplayer", "slave", "media", "video", "player", "playback"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Video :: Display",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mpslave"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
