"""Building cargo command lines for the workspace packages."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .arch import UefiArch
from .util import Command


class Package(Enum):
    """A package in the workspace."""

    UEFI = "uefi"
    UEFI_APP = "uefi_app"
    UEFI_MACROS = "uefi-macros"
    UEFI_SERVICES = "uefi-services"
    UEFI_TEST_RUNNER = "uefi-test-runner"
    XTASK = "xtask"

    @classmethod
    def published(cls) -> list[Package]:
        """All published packages."""
        return [cls.UEFI, cls.UEFI_MACROS, cls.UEFI_SERVICES]

    @classmethod
    def all_except_xtask(cls) -> list[Package]:
        """All the packages except for xtask."""
        return [
            cls.UEFI,
            cls.UEFI_APP,
            cls.UEFI_MACROS,
            cls.UEFI_SERVICES,
            cls.UEFI_TEST_RUNNER,
        ]


class Feature(Enum):
    """A cargo feature that can be enabled."""

    ALLOC = "alloc"
    EXTS = "exts"
    LOGGER = "logger"
    CI = "uefi-test-runner/ci"
    QEMU = "uefi-test-runner/qemu"

    @classmethod
    def more_code(cls) -> list[Feature]:
        """Features that enable more code in the root uefi package."""
        return [cls.ALLOC, cls.EXTS, cls.LOGGER]


def comma_separated(features: Iterable[Feature]) -> str:
    """Join feature names with commas, as cargo's ``--features`` expects."""
    return ",".join(feature.value for feature in features)


class CargoAction(Enum):
    """The cargo subcommand to run."""

    BUILD = "build"
    CLIPPY = "clippy"
    DOC = "doc"
    TEST = "test"


@dataclass
class Cargo:
    """A cargo invocation over a set of packages.

    ``open_docs`` only matters for ``CargoAction.DOC``.
    """

    action: CargoAction
    features: list[Feature] = field(default_factory=list)
    nightly: bool = False
    packages: list[Package] = field(default_factory=list)
    release: bool = False
    target: UefiArch | None = None
    warnings_as_errors: bool = False
    open_docs: bool = False

    def command(self) -> Command:
        """Build the command line; raises ValueError if no packages are set."""
        if not self.packages:
            raise ValueError("packages cannot be empty")

        args: list[str] = []
        env: dict[str, str | None] = {}
        extra_args: list[str] = []
        tool_args: list[str] = []

        if self.nightly:
            args.append("+nightly")

        if self.action is CargoAction.CLIPPY and self.warnings_as_errors:
            tool_args.extend(["-D", "warnings"])
        elif self.action is CargoAction.DOC:
            if self.warnings_as_errors:
                env["RUSTDOCFLAGS"] = "-Dwarnings"
            if self.open_docs:
                extra_args.append("--open")
        args.append(self.action.value)

        if self.release:
            args.append("--release")

        if self.target is not None:
            args.extend(
                [
                    "--target",
                    self.target.as_triple(),
                    "-Zbuild-std=core,compiler_builtins,alloc",
                    "-Zbuild-std-features=compiler-builtins-mem",
                ]
            )

        for package in self.packages:
            args.extend(["--package", package.value])

        if self.features:
            args.extend(["--features", comma_separated(self.features)])

        args.extend(extra_args)

        if tool_args:
            args.append("--")
            args.extend(tool_args)

        return Command("cargo", args, env)