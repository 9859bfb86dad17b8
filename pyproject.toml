[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "weighstation"
version = "0.1.0"
description = "Parcel weighing and dimensioning station: serial scale and sensor controller discovery, clipboard output and a web console"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
    "flask",
]
keywords = ["scale", "weighing", "dimensioning", "serial", "arduino", "warehouse"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Manufacturing",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Interface Engine/Protocol Translator",
    "Topic :: Terminals :: Serial",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
weighstation = "weighstation.app:main"

[tool.hatch.build.targets.wheel]
packages = ["weighstation"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
