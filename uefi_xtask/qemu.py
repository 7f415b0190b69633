"""Running the UEFI test runner inside QEMU."""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
import sys
import tempfile
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from .arch import UefiArch
from .opt import QemuOpt
from .util import Command, command_to_string


class QemuError(RuntimeError):
    """Raised when setting up or running QEMU fails."""


_SYSTEM_OVMF_DIRS = (
    # Most distros, including CentOS, Fedora, Debian, and Ubuntu.
    Path("/usr/share/OVMF"),
    # Arch Linux.
    Path("/usr/share/ovmf/x64"),
)


@dataclass(frozen=True)
class OvmfPaths:
    """Locations of the OVMF firmware code and variable store."""

    code: Path
    vars: Path
    vars_read_only: bool

    @classmethod
    def from_dir(cls, directory: Path | str, arch: UefiArch) -> OvmfPaths:
        """Return the expected file locations for ``arch`` inside ``directory``."""
        directory = Path(directory)
        if arch is UefiArch.AARCH64:
            # The AArch64 firmware won't boot unless the vars file is writeable.
            return cls(
                directory / "QEMU_EFI-pflash.raw",
                directory / "vars-template-pflash.raw",
                False,
            )
        if arch is UefiArch.IA32:
            return cls(directory / "OVMF32_CODE.fd", directory / "OVMF32_VARS.fd", True)
        return cls(directory / "OVMF_CODE.fd", directory / "OVMF_VARS.fd", True)

    def exists(self) -> bool:
        """Whether both files are present."""
        return self.code.exists() and self.vars.exists()

    @classmethod
    def find(cls, opt: QemuOpt, arch: UefiArch) -> OvmfPaths:
        """Find the OVMF files, raising QemuError if they are nowhere."""
        if opt.ovmf_dir is not None:
            paths = cls.from_dir(opt.ovmf_dir, arch)
            if paths.exists():
                return paths
            raise QemuError(f"OVMF files not found in {opt.ovmf_dir}")

        candidates = [Path("uefi-test-runner")]
        if sys.platform.startswith("linux"):
            candidates.extend(_SYSTEM_OVMF_DIRS)
        for directory in candidates:
            paths = cls.from_dir(directory, arch)
            if paths.exists():
                return paths

        raise QemuError("OVMF files not found anywhere")


def add_pflash_args(cmd: Command, file: Path | str, read_only: bool) -> None:
    """Append a pflash drive for ``file`` to the command."""
    readonly = "on" if read_only else "off"
    cmd.args.extend(["-drive", f"if=pflash,format=raw,readonly={readonly},file={file}"])


@dataclass(frozen=True)
class Pipe:
    """A pair of named pipes that QEMU connects a character device to."""

    qemu_arg: str
    input_path: Path
    output_path: Path

    @classmethod
    def create(cls, directory: Path | str, base_name: str) -> Pipe:
        """Create ``<base_name>.in`` and ``<base_name>.out`` FIFOs in ``directory``."""
        directory = Path(directory)
        input_path = directory / f"{base_name}.in"
        output_path = directory / f"{base_name}.out"
        os.mkfifo(input_path, 0o666)
        os.mkfifo(output_path, 0o666)
        return cls(f"pipe:{directory / base_name}", input_path, output_path)


class Io:
    """Line-oriented text reader and writer pair."""

    def __init__(self, reader: TextIO, writer: TextIO) -> None:
        self.reader = reader
        self.writer = writer

    def read_line(self) -> str:
        """Read one line, raising EOFError at end of input."""
        line = self.reader.readline()
        if not line:
            raise EOFError("EOF reached")
        return line

    def read_json(self) -> Any:
        """Read one line and decode it as JSON."""
        return json.loads(self.read_line())

    def write_line(self, line: str) -> None:
        """Write a line and flush it."""
        self.writer.write(line + "\n")
        self.writer.flush()

    def write_json(self, value: Any) -> None:
        """Write a value as compact JSON on one line."""
        self.write_line(json.dumps(value, separators=(",", ":")))

    def __iter__(self) -> Iterator[str]:
        """Yield lines until end of input or a read error."""
        while True:
            try:
                yield self.read_line()
            except (EOFError, OSError, ValueError):
                return

    def close(self) -> None:
        for stream in (self.reader, self.writer):
            try:
                stream.close()
            except OSError:
                pass

    def __enter__(self) -> Io:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @classmethod
    def from_pipe(cls, pipe: Pipe) -> Io:
        """Open both ends of a QEMU pipe; blocks until QEMU opens them too."""
        reader = open(pipe.output_path, encoding="utf-8")
        writer = open(pipe.input_path, "w", encoding="utf-8")
        return cls(reader, writer)


# Strips ANSI escape codes added by the console output protocol.
_ANSI_ESCAPE = re.compile(r"(\x9b|\x1b\[)[0-?]*[ -/]*[@-~]")


def strip_ansi(line: str) -> str:
    """Remove ANSI escape sequences from ``line``."""
    return _ANSI_ESCAPE.sub("", line)


def echo_filtered_stdout(child_io: Io) -> None:
    """Print the child's output with whitespace and escape codes stripped."""
    for line in child_io:
        print(strip_ansi(line.strip()), flush=True)


def _expect_return(monitor_io: Io, reply: Any) -> None:
    if reply != {"return": {}}:
        raise QemuError(f"unexpected QEMU monitor reply: {reply}")


def process_qemu_io(monitor_io: Io, serial_io: Io, tmp_dir: Path | str) -> None:
    """Do the monitor handshake, then serve screenshot requests from the VM."""
    greeting = monitor_io.read_line()
    if not greeting.startswith('{"QMP":'):
        raise QemuError(f"unexpected QEMU monitor greeting: {greeting.rstrip()}")
    monitor_io.write_json({"execute": "qmp_capabilities"})
    _expect_return(monitor_io, monitor_io.read_json())

    prefix = "SCREENSHOT: "
    for raw_line in serial_io:
        line = raw_line.rstrip()
        if not line.startswith(prefix):
            continue
        reference_name = line[len(prefix):]
        screenshot_path = Path(tmp_dir) / "screenshot.ppm"

        monitor_io.write_json(
            {"execute": "screendump", "arguments": {"filename": str(screenshot_path)}}
        )
        reply = monitor_io.read_json()
        while isinstance(reply, dict) and "event" in reply:
            reply = monitor_io.read_json()
        _expect_return(monitor_io, reply)

        serial_io.write_line("OK")

        reference_file = Path("uefi-test-runner/screenshots") / f"{reference_name}.ppm"
        expected = reference_file.read_bytes()
        actual = screenshot_path.read_bytes()
        if expected != actual:
            raise QemuError(f"screenshot does not match reference {reference_file}")


_BOOT_FILES = {
    UefiArch.AARCH64: "BootAA64.efi",
    UefiArch.IA32: "BootIA32.efi",
    UefiArch.X86_64: "BootX64.efi",
}


def build_esp_dir(opt: QemuOpt) -> Path:
    """Create an EFI system partition directory to pass into QEMU."""
    build_mode = "release" if opt.release else "debug"
    build_dir = Path("target") / opt.target.as_triple() / build_mode
    esp_dir = build_dir / "esp"
    boot_dir = esp_dir / "EFI" / "Boot"
    built_file = build_dir / "uefi-test-runner.efi"
    boot_dir.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(built_file, boot_dir / _BOOT_FILES[opt.target])
    # Used by the media protocol tests.
    (boot_dir / "test_input.txt").write_text("test input data")
    return esp_dir


_QEMU_EXECUTABLES = {
    UefiArch.AARCH64: "qemu-system-aarch64",
    UefiArch.IA32: "qemu-system-i386",
    UefiArch.X86_64: "qemu-system-x86_64",
}


def run_qemu(arch: UefiArch, opt: QemuOpt) -> None:
    """Boot the test runner in QEMU and check that it exits successfully."""
    esp_dir = build_esp_dir(opt)

    cmd = Command(_QEMU_EXECUTABLES[arch])
    # QEMU enables a lot of devices by default, which slows down boot.
    cmd.args.append("-nodefaults")

    if arch is UefiArch.AARCH64:
        cmd.args.extend(["-machine", "virt", "-cpu", "cortex-a72"])
    elif arch is UefiArch.X86_64:
        cmd.args.extend(["-machine", "q35"])
        # The multi-processor services test needs exactly 4 CPUs.
        cmd.args.extend(["-smp", "4"])
        cmd.args.extend(["-m", "256M"])
        if not opt.disable_kvm and not opt.ci:
            cmd.args.append("--enable-kvm")
        if opt.ci:
            cmd.args.append("-no-reboot")
        # Map the QEMU exit signal to port f4.
        cmd.args.extend(["-device", "isa-debug-exit,iobase=0xf4,iosize=0x04"])

    ovmf_paths = OvmfPaths.find(opt, arch)
    add_pflash_args(cmd, ovmf_paths.code, True)
    add_pflash_args(cmd, ovmf_paths.vars, ovmf_paths.vars_read_only)

    # Mount the ESP directory as a FAT partition.
    cmd.args.extend(["-drive", f"format=raw,file=fat:rw:{esp_dir}"])

    # Even headless, QEMU emulates a display so screenshots can be taken.
    cmd.args.extend(["-vga", "std"])
    if opt.headless:
        cmd.args.extend(["-display", "none"])

    with tempfile.TemporaryDirectory() as tmp:
        tmp_dir = Path(tmp)
        monitor_pipe = Pipe.create(tmp_dir, "qemu-monitor")
        serial_pipe = Pipe.create(tmp_dir, "serial")

        # The first serial device carries logs to stdout; the second is used
        # for screenshot requests and replies.
        cmd.args.extend(["-serial", "stdio", "-serial", serial_pipe.qemu_arg])
        cmd.args.extend(["-qmp", monitor_pipe.qemu_arg])

        print(command_to_string(cmd), flush=True)

        child = subprocess.Popen(
            [cmd.program, *cmd.args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            text=True,
            env=cmd.child_environment(),
        )

        error: BaseException | None = None
        monitor_io = serial_io = None
        child_io = Io(child.stdout, child.stdin)
        stdout_thread = threading.Thread(target=echo_filtered_stdout, args=(child_io,))
        try:
            monitor_io = Io.from_pipe(monitor_pipe)
            serial_io = Io.from_pipe(serial_pipe)
            stdout_thread.start()
            try:
                process_qemu_io(monitor_io, serial_io, tmp_dir)
            except Exception as exc:
                error = exc
            returncode = child.wait()
            stdout_thread.join()
        finally:
            for stream_io in (monitor_io, serial_io):
                if stream_io is not None:
                    stream_io.close()
            child_io.close()

        if error is not None:
            raise error

    if returncode < 0:
        raise QemuError(f"qemu was terminated by a signal: {-returncode}")

    # The x86_64 test runner exits with code 3 to signal success.
    successful_exit_code = 3 if arch is UefiArch.X86_64 else 0
    if returncode != successful_exit_code:
        raise QemuError(
            f"qemu exited with code {returncode}, expected {successful_exit_code}"
        )