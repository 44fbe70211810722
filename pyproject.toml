[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xllm"
version = "0.5.0"
description = "Building blocks for LLM inference: continuous-batching scheduler, byte-level BPE tokenizer, simplified decode step and GPT-2 weight loading"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["llm", "inference", "scheduler", "tokenizer", "bpe", "gpt2", "continuous-batching"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["xllm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
