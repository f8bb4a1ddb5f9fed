[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "alarmbutton"
version = "1.0.0"
description = "Office alarm button: a gRPC server holding a shared alarm state, commands that switch it, a checker that shuts workstations down, and a packager/updater pair."
requires-python = ">=3.10"
keywords = ["alarm", "shutdown", "grpc", "office", "security", "updater"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Operating System :: MacOS",
    "Operating System :: Microsoft :: Windows",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
]
dependencies = [
    "grpcio",
    "pyyaml",
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
alarm-button-on = "alarmbutton.cli:button_on_main"
alarm-button-off = "alarmbutton.cli:button_off_main"
alarm-checker = "alarmbutton.cli:checker_main"
alarm-server = "alarmbutton.cli:server_main"
alarm-packager = "alarmbutton.cli:packager_main"
alarm-updater = "alarmbutton.cli:updater_main"

[tool.hatch.build.targets.wheel]
packages = ["alarmbutton"]

[tool.hatch.build.targets.sdist]
include = ["alarmbutton", "tests", "pyproject.toml", "README.md"]

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
ignore_missing_imports = true
