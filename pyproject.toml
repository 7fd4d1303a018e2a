[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lightgpt"
version = "1.0.0"
description = "Small transformer inference toolkit: GGUF model reading, KV cache, 2-bit quantization, speculative decoding and reference kernels"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["gguf", "transformer", "inference", "quantization", "kv-cache", "speculative-decoding"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
lightgpt = "lightgpt.inference:main"

[tool.hatch.build.targets.wheel]
packages = ["lightgpt"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
