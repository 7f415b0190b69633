"""Command-line options for the developer task runner."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field, fields
from pathlib import Path

from .arch import UefiArch


@dataclass
class BuildOpt:
    """Build all the uefi packages."""

    target: UefiArch = field(default_factory=UefiArch.default)
    release: bool = False


@dataclass
class ClippyOpt:
    """Run clippy on all the packages."""

    target: UefiArch = field(default_factory=UefiArch.default)
    warnings_as_errors: bool = False


@dataclass
class DocOpt:
    """Build the docs for the uefi packages."""

    open: bool = False
    warnings_as_errors: bool = False


@dataclass
class QemuOpt:
    """Build uefi-test-runner and run it in QEMU."""

    target: UefiArch = field(default_factory=UefiArch.default)
    release: bool = False
    disable_kvm: bool = False
    ci: bool = False
    headless: bool = False
    ovmf_dir: Path | None = None


@dataclass
class TestOpt:
    """Run unit tests and doctests on the host."""


@dataclass
class TestLatestReleaseOpt:
    """Build the template against the crates.io packages."""


def _arch(value: str) -> UefiArch:
    try:
        return UefiArch.parse(value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(str(error)) from error


def _add_target(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--target",
        type=_arch,
        default=UefiArch.default(),
        help="UEFI target to build for.",
    )


def _add_release(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--release", action="store_true", help="Build in release mode.")


def _add_warnings(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--warnings-as-errors",
        action="store_true",
        help="Treat warnings as errors.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per action."""
    parser = argparse.ArgumentParser(
        prog="xtask",
        description="Developer utility for running various tasks in uefi-rs.",
    )
    subparsers = parser.add_subparsers(dest="action", metavar="ACTION", required=True)

    build = subparsers.add_parser("build", help=BuildOpt.__doc__)
    _add_target(build)
    _add_release(build)
    build.set_defaults(opt_class=BuildOpt)

    clippy = subparsers.add_parser("clippy", help=ClippyOpt.__doc__)
    _add_target(clippy)
    _add_warnings(clippy)
    clippy.set_defaults(opt_class=ClippyOpt)

    doc = subparsers.add_parser("doc", help=DocOpt.__doc__)
    doc.add_argument("--open", action="store_true", help="Open the docs in a browser.")
    _add_warnings(doc)
    doc.set_defaults(opt_class=DocOpt)

    run = subparsers.add_parser("run", help=QemuOpt.__doc__)
    _add_target(run)
    _add_release(run)
    run.add_argument(
        "--disable-kvm",
        action="store_true",
        help="Disable hardware accelerated virtualization support in QEMU.",
    )
    run.add_argument(
        "--ci", action="store_true", help="Disable some tests that don't work in the CI."
    )
    run.add_argument("--headless", action="store_true", help="Run QEMU without a GUI.")
    run.add_argument(
        "--ovmf-dir", type=Path, default=None, help="Directory in which to look for OVMF files."
    )
    run.set_defaults(opt_class=QemuOpt)

    test = subparsers.add_parser("test", help=TestOpt.__doc__)
    test.set_defaults(opt_class=TestOpt)

    latest = subparsers.add_parser("test-latest-release", help=TestLatestReleaseOpt.__doc__)
    latest.set_defaults(opt_class=TestLatestReleaseOpt)

    return parser


def parse_args(
    argv: Sequence[str] | None = None,
) -> BuildOpt | ClippyOpt | DocOpt | QemuOpt | TestOpt | TestLatestReleaseOpt:
    """Parse the command line into the options of the chosen action.

    Invalid arguments make argparse exit with status 2.
    """
    if argv is None:
        argv = sys.argv[1:]
    namespace = build_parser().parse_args(list(argv))
    opt_class = namespace.opt_class
    values = {f.name: getattr(namespace, f.name) for f in fields(opt_class)}
    return opt_class(**values)