[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ags"
version = "0.1.0"
description = "Agent sandbox helpers: config loading, git mount discovery, shell completions, alias wrappers and image update helpers"
requires-python = ">=3.11"
dependencies = []
keywords = ["sandbox", "podman", "agents", "git", "ssh", "configuration", "completions"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ags"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
