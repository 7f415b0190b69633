[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "uefi_xtask"
version = "0.1.0"
description = "Developer task runner for building, linting, documenting and VM-testing a workspace of UEFI packages"
requires-python = ">=3.10"
keywords = ["uefi", "cargo", "qemu", "ovmf", "build", "task-runner"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Build Tools",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
uefi-xtask = "uefi_xtask.main:main"

[tool.hatch.build.targets.wheel]
packages = ["uefi_xtask"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
