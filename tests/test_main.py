import subprocess
from pathlib import Path
from unittest import mock

import pytest

from uefi_xtask.arch import UefiArch
from uefi_xtask.main import (
    check_latest_release,
    clippy,
    main,
    run_vm_tests,
)
from uefi_xtask.opt import ClippyOpt, QemuOpt
from uefi_xtask.util import CommandError

BUILD_STD = [
    "-Zbuild-std=core,compiler_builtins,alloc",
    "-Zbuild-std-features=compiler-builtins-mem",
]
ALL_EXCEPT_XTASK = [
    "--package", "uefi",
    "--package", "uefi_app",
    "--package", "uefi-macros",
    "--package", "uefi-services",
    "--package", "uefi-test-runner",
]


def _runner(returncode=0):
    def fake_run(args, **kwargs):
        return subprocess.CompletedProcess(args, returncode)

    return mock.patch("subprocess.run", side_effect=fake_run)


def _argv(call):
    return call.args[0]


def test_build_command():
    with _runner() as run:
        status = main(["build", "--target", "aarch64", "--release"])
    assert status == 0
    assert run.call_count == 1
    assert _argv(run.call_args) == [
        "cargo", "+nightly", "build", "--release",
        "--target", "aarch64-unknown-uefi", *BUILD_STD,
        *ALL_EXCEPT_XTASK,
        "--features", "alloc,exts,logger",
    ]


def test_clippy_runs_twice():
    with _runner() as run:
        status = main(["clippy", "--target", "x86_64", "--warnings-as-errors"])
    assert status == 0
    calls = run.call_args_list
    assert len(calls) == 2
    assert _argv(calls[0]) == [
        "cargo", "+nightly", "clippy",
        "--target", "x86_64-unknown-uefi", *BUILD_STD,
        *ALL_EXCEPT_XTASK,
        "--features", "alloc,exts,logger",
        "--", "-D", "warnings",
    ]
    assert _argv(calls[1]) == [
        "cargo", "clippy", "--package", "xtask", "--", "-D", "warnings",
    ]


def test_clippy_stops_after_failure():
    with _runner(returncode=1) as run:
        with pytest.raises(CommandError):
            clippy(ClippyOpt())
    assert run.call_count == 1


def test_doc_sets_rustdocflags():
    with _runner() as run:
        status = main(["doc", "--open", "--warnings-as-errors"])
    assert status == 0
    assert _argv(run.call_args) == [
        "cargo", "+nightly", "doc",
        "--package", "uefi", "--package", "uefi-macros", "--package", "uefi-services",
        "--features", "alloc,exts,logger", "--open",
    ]
    assert run.call_args.kwargs["env"]["RUSTDOCFLAGS"] == "-Dwarnings"


def test_run_host_tests_command():
    with _runner() as run:
        status = main(["test"])
    assert status == 0
    assert _argv(run.call_args) == [
        "cargo", "+nightly", "test",
        "--package", "uefi", "--package", "uefi-macros", "--package", "xtask",
        "--features", "exts",
    ]


def test_run_vm_tests_builds_runner_first():
    with _runner(returncode=1) as run:
        with pytest.raises(CommandError):
            run_vm_tests(QemuOpt(target=UefiArch.IA32, ci=True))
    assert run.call_count == 1
    assert _argv(run.call_args) == [
        "cargo", "+nightly", "build",
        "--target", "i686-unknown-uefi", *BUILD_STD,
        "--package", "uefi-test-runner",
        "--features", "uefi-test-runner/qemu,uefi-test-runner/ci",
    ]


def test_check_latest_release(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "BUILDING.md").write_text(
        "Run:\n\n    cargo +nightly build --target x86_64-unknown-uefi\n"
    )
    with _runner() as run:
        result = check_latest_release()
    assert result is None
    copy_call, build_call = run.call_args_list
    copy_args = _argv(copy_call)
    assert copy_args[:4] == ["cp", "--recursive", "--verbose", "template"]
    assert _argv(build_call) == [
        "cargo", "+nightly", "build", "--target", "x86_64-unknown-uefi",
    ]
    assert Path(build_call.kwargs["cwd"]) == Path(copy_args[4]) / "template"


def test_check_latest_release_requires_documented_command(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "BUILDING.md").write_text("nothing useful here\n")
    with _runner() as run:
        with pytest.raises(RuntimeError, match="BUILDING.md"):
            check_latest_release()
    assert run.call_count == 1


def test_main_success():
    with _runner() as run:
        assert main(["test"]) == 0
    assert _argv(run.call_args)[2] == "test"


def test_main_reports_failure(capsys):
    with _runner(returncode=1):
        assert main(["build"]) == 1
    assert "command failed" in capsys.readouterr().err


def test_main_rejects_bad_arch():
    with pytest.raises(SystemExit) as info:
        main(["build", "--target", "mips"])
    assert info.value.code == 2