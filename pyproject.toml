[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imageboard"
version = "0.1.0"
description = "Web layer of a tagged image board: media embedding, thumbnails, difference hashes, tag pages and flash messages"
requires-python = ">=3.10"
keywords = ["image board", "booru", "thumbnails", "dhash", "tags", "flask"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    "Topic :: Multimedia :: Graphics",
]
dependencies = [
    "flask>=2.2",
    "jinja2>=3.1",
    "markupsafe>=2.1",
    "pillow>=9.1",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[tool.hatch.build.targets.wheel]
packages = ["imageboard"]

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
