[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minkapi"
version = "0.1.0"
description = "A minimal in-memory Kubernetes API server for local testing of controllers and schedulers"
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "kube-apiserver", "mock", "testing", "in-memory", "scheduler"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Testing :: Mocking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
minkapi = "minkapi.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["minkapi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
