"""Entry point of the developer task runner."""

from __future__ import annotations

import sys
import tempfile
from collections.abc import Sequence
from pathlib import Path

from . import qemu
from .cargo import Cargo, CargoAction, Feature, Package
from .opt import (
    BuildOpt,
    ClippyOpt,
    DocOpt,
    QemuOpt,
    TestLatestReleaseOpt,
    TestOpt,
    parse_args,
)
from .util import Command, command_to_string, run_cmd

_BUILDING_DOC = Path("BUILDING.md")


def build(opt: BuildOpt) -> None:
    """Build all the UEFI packages for the chosen target."""
    cargo = Cargo(
        action=CargoAction.BUILD,
        features=Feature.more_code(),
        nightly=True,
        packages=Package.all_except_xtask(),
        release=opt.release,
        target=opt.target,
    )
    run_cmd(cargo.command())


def clippy(opt: ClippyOpt) -> None:
    """Run clippy on the UEFI packages, then on xtask itself."""
    run_cmd(
        Cargo(
            action=CargoAction.CLIPPY,
            features=Feature.more_code(),
            nightly=True,
            packages=Package.all_except_xtask(),
            target=opt.target,
            warnings_as_errors=opt.warnings_as_errors,
        ).command()
    )
    run_cmd(
        Cargo(
            action=CargoAction.CLIPPY,
            packages=[Package.XTASK],
            warnings_as_errors=opt.warnings_as_errors,
        ).command()
    )


def doc(opt: DocOpt) -> None:
    """Build the docs of the published packages."""
    cargo = Cargo(
        action=CargoAction.DOC,
        features=Feature.more_code(),
        nightly=True,
        packages=Package.published(),
        warnings_as_errors=opt.warnings_as_errors,
        open_docs=opt.open,
    )
    run_cmd(cargo.command())


def run_vm_tests(opt: QemuOpt) -> None:
    """Build uefi-test-runner and run it in QEMU."""
    features = [Feature.QEMU]
    if opt.ci:
        features.append(Feature.CI)

    cargo = Cargo(
        action=CargoAction.BUILD,
        features=features,
        nightly=True,
        packages=[Package.UEFI_TEST_RUNNER],
        release=opt.release,
        target=opt.target,
    )
    run_cmd(cargo.command())

    qemu.run_qemu(opt.target, opt)


def run_host_tests() -> None:
    """Run unit tests and doctests on the host.

    uefi-services is left out because its lang items conflict with std.
    """
    cargo = Cargo(
        action=CargoAction.TEST,
        features=[Feature.EXTS],
        nightly=True,
        packages=[Package.UEFI, Package.UEFI_MACROS, Package.XTASK],
    )
    run_cmd(cargo.command())


def check_latest_release() -> None:
    """Build the template app in isolation against the released packages.

    The template is copied to a temporary directory so that the workspace's
    patch section does not apply. The build command must also appear in
    BUILDING.md, so that the documentation stays accurate.
    """
    with tempfile.TemporaryDirectory() as tmp:
        tmp_dir = Path(tmp)
        run_cmd(Command("cp", ["--recursive", "--verbose", "template", str(tmp_dir)]))

        build_cmd = Command(
            "cargo",
            ["+nightly", "build", "--target", "x86_64-unknown-uefi"],
            cwd=tmp_dir / "template",
        )

        building_md = _BUILDING_DOC.read_text(encoding="utf-8")
        expected = command_to_string(build_cmd)
        if expected not in building_md:
            raise RuntimeError(f"{_BUILDING_DOC} does not contain the command: {expected}")
        run_cmd(build_cmd)


_ACTIONS = {
    BuildOpt: build,
    ClippyOpt: clippy,
    DocOpt: doc,
    QemuOpt: run_vm_tests,
    TestOpt: lambda _opt: run_host_tests(),
    TestLatestReleaseOpt: lambda _opt: check_latest_release(),
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the action named on the command line; return the exit status."""
    opt = parse_args(argv)
    try:
        _ACTIONS[type(opt)](opt)
    except (RuntimeError, ValueError, OSError) as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())