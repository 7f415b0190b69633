"""Task runner that builds, lints, documents and VM-tests UEFI packages via cargo and QEMU."""

__version__ = "0.1.0"
__all__ = ["arch", "cargo", "main", "opt", "qemu", "util"]