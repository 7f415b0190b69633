from pathlib import Path

import pytest

from uefi_xtask.arch import UefiArch
from uefi_xtask.opt import (
    BuildOpt,
    ClippyOpt,
    DocOpt,
    QemuOpt,
    TestLatestReleaseOpt,
    TestOpt,
    build_parser,
    parse_args,
)


def test_build_defaults():
    assert parse_args(["build"]) == BuildOpt(target=UefiArch.X86_64, release=False)


def test_build_with_target_and_release():
    opt = parse_args(["build", "--target", "aarch64", "--release"])
    assert opt == BuildOpt(target=UefiArch.AARCH64, release=True)


def test_clippy_warnings_as_errors():
    opt = parse_args(["clippy", "--warnings-as-errors", "--target", "ia32"])
    assert opt == ClippyOpt(target=UefiArch.IA32, warnings_as_errors=True)


def test_doc_flags():
    assert parse_args(["doc", "--open"]) == DocOpt(open=True, warnings_as_errors=False)
    assert parse_args(["doc"]) == DocOpt()


def test_run_options():
    opt = parse_args(
        ["run", "--target", "ia32", "--ci", "--headless", "--disable-kvm", "--ovmf-dir", "ovmf"]
    )
    assert opt == QemuOpt(
        target=UefiArch.IA32,
        release=False,
        disable_kvm=True,
        ci=True,
        headless=True,
        ovmf_dir=Path("ovmf"),
    )


def test_run_defaults():
    opt = parse_args(["run"])
    assert opt.ovmf_dir is None
    assert opt.target is UefiArch.X86_64
    assert not (opt.ci or opt.headless or opt.disable_kvm or opt.release)


def test_unit_actions():
    assert parse_args(["test"]) == TestOpt()
    assert parse_args(["test-latest-release"]) == TestLatestReleaseOpt()


def test_invalid_target_exits():
    with pytest.raises(SystemExit) as info:
        parse_args(["build", "--target", "riscv"])
    assert info.value.code == 2


def test_missing_action_exits():
    with pytest.raises(SystemExit) as info:
        parse_args([])
    assert info.value.code == 2


def test_option_not_valid_for_action():
    with pytest.raises(SystemExit):
        parse_args(["doc", "--target", "x86_64"])


def test_parser_knows_all_actions():
    parser = build_parser()
    namespace = parser.parse_args(["test-latest-release"])
    assert namespace.action == "test-latest-release"