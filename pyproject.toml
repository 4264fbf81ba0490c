[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "microshop"
version = "0.1.0"
description = "Product, user and shipment services for a small web shop: repositories, use cases, change-event replication and JSON REST endpoints."
requires-python = ">=3.10"
keywords = ["shop", "rest", "etl", "change-data-capture", "flask", "sqlalchemy", "wsgi"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Framework :: Flask",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Database :: Front-Ends",
]
dependencies = [
    "sqlalchemy>=2.0",
    "bcrypt>=4.0",
    "flask>=2.3",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
microshop = "microshop.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["microshop"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
