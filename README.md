# uefi_xtask

A command-line task runner for a workspace of UEFI packages. It wraps
`cargo` and `qemu` so that the usual development jobs run with one short
command from the root of the repository.

It needs only the Python standard library. The tools it runs (`cargo` with a
nightly toolchain, `qemu-system-*`, and `cp` for `test-latest-release`) must
be on `PATH`. The `run` action creates named pipes, so it works on POSIX
systems only.

## Installation

```
pip install .
```

## Usage

Each action is a subcommand of `uefi-xtask`:

```
uefi-xtask build [--target ARCH] [--release]
uefi-xtask clippy [--target ARCH] [--warnings-as-errors]
uefi-xtask doc [--open] [--warnings-as-errors]
uefi-xtask run [--target ARCH] [--release] [--disable-kvm] [--ci] [--headless] [--ovmf-dir DIR]
uefi-xtask test
uefi-xtask test-latest-release
```

`ARCH` is `aarch64`, `ia32` or `x86_64`. The default is `x86_64`.

- `build` builds all the UEFI packages (everything but `xtask`) for the target
  with the nightly toolchain and the `alloc`, `exts` and `logger` features.
- `clippy` lints the UEFI packages for the target, then the `xtask` package on
  the host. With `--warnings-as-errors` clippy is passed `-D warnings`.
- `doc` builds the documentation of the published packages (`uefi`,
  `uefi-macros`, `uefi-services`). `--open` opens it in a browser;
  `--warnings-as-errors` sets `RUSTDOCFLAGS=-Dwarnings`.
- `run` builds `uefi-test-runner` with the `qemu` feature (and `ci` with
  `--ci`), puts it in an EFI system partition directory under
  `target/<triple>/<debug|release>/esp` and boots it in QEMU with OVMF
  firmware. The child's output is echoed with surrounding whitespace and ANSI
  escapes removed. Screenshot requests from the guest are answered through the
  QEMU monitor and compared byte for byte with the reference images in
  `uefi-test-runner/screenshots`. On x86_64 the run succeeds when QEMU exits
  with code 3, on the other targets with code 0.
- `test` runs the unit tests and doctests of `uefi`, `uefi-macros` and `xtask`
  on the host.
- `test-latest-release` copies the `template` app to a temporary directory and
  builds it there, after checking that the build command appears in
  `BUILDING.md`.

Every command is printed before it runs. If a command fails, or the task
fails in any other way, the error is printed to standard error and the exit
status is 1. Invalid arguments give exit status 2.

### OVMF firmware

`run` looks for OVMF files first in the directory given with `--ovmf-dir`
(failing if they are not there), then in `uefi-test-runner`, then, on Linux,
in `/usr/share/OVMF` and `/usr/share/ovmf/x64`.

## Using it as a library

```python
from uefi_xtask.arch import UefiArch
from uefi_xtask.cargo import Cargo, CargoAction, Feature, Package
from uefi_xtask.util import command_to_string, run_cmd

cargo = Cargo(
    action=CargoAction.BUILD,
    features=Feature.more_code(),
    nightly=True,
    packages=Package.all_except_xtask(),
    target=UefiArch.parse("x86_64"),
)
cmd = cargo.command()
print(command_to_string(cmd))
run_cmd(cmd)  # raises CommandError if cargo fails
```

`Cargo.command()` raises `ValueError` when no packages are given, and
`UefiArch.parse()` raises `ValueError` for an unknown architecture name.
`uefi_xtask.opt.parse_args()` turns a command line into the options object of
its action, and `uefi_xtask.qemu.run_qemu()` runs the VM tests directly.