[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dumplingkit"
version = "0.1.0"
description = "TrueType glyph rasterizer, write-back LRU sector cache and framebuffer log console"
requires-python = ">=3.10"
dependencies = []
keywords = ["truetype", "rasterizer", "font", "glyph", "sector-cache", "lru", "console", "framebuffer"]
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
    "Topic :: Text Processing :: Fonts",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dumplingkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
