[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tdsproto"
version = "0.1.0"
description = "Encoders and decoders for the TDS wire protocol used by SQL Server clients"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["tds", "sql server", "mssql", "protocol", "ntlm", "tvp", "prelogin", "login7"]
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
    "Topic :: Database :: Front-Ends",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tdsproto"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
