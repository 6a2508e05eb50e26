[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "petdrive"
version = "0.1.0"
description = "Building blocks for a Commodore PET disk drive replacement: D64 image layout, FAT32 volume structures, SD card access over SPI and an HTTP file server client"
requires-python = ">=3.10"
dependencies = []
keywords = ["commodore", "pet", "d64", "1541", "fat32", "sd-card", "spi", "retrocomputing"]
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
    "Topic :: System :: Filesystems",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["petdrive"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
