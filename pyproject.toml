[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "crdschema"
version = "0.1.0"
description = "Build, flatten and annotate OpenAPI v3 schemas and CustomResourceDefinitions from typed declarations and markers."
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "crd", "openapi", "jsonschema", "code-generation", "markers"]
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
    "Topic :: Software Development :: Code Generators",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["crdschema"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
