"""Shared fixtures: target specs, ELF images and a local-directory remote transport."""

import os
import shutil
import struct
from pathlib import Path
from typing import List, Optional

import pytest

from crossdeploy.exceptions import RemoteConnectionError, RemoteWriteError, TransferError
from crossdeploy.models import Artifact, HostProfile, TargetSpec

PI4_TRIPLE = "armv7-unknown-linux-gnueabihf"


def elf_image(machine: int, elf_class: int = 1, data: int = 1, size: int = 256) -> bytes:
    """Executable ELF header without sections or segments, zero-padded to ``size`` bytes.

    ``elf_class`` is 1 (32-bit) or 2 (64-bit), ``data`` 1 (LE) or 2 (BE).
    """
    order = '<' if data == 1 else '>'
    addr = 'I' if elf_class == 1 else 'Q'
    ehsize = 52 if elf_class == 1 else 64
    ident = b'\x7fELF' + bytes([elf_class, data, 1]) + bytes(9)
    header = ident + struct.pack(
        order + 'HHI' + addr * 3 + 'IHHHHHH',
        2,        # e_type ET_EXEC
        machine,  # e_machine
        1,        # e_version
        0, 0, 0,  # e_entry, e_phoff, e_shoff
        0,        # e_flags
        ehsize,
        0, 0,     # e_phentsize, e_phnum
        0, 0, 0,  # e_shentsize, e_shnum, e_shstrndx
    )
    return header + bytes(max(0, size - len(header)))


def write_binary(path: Path, content: bytes, executable: bool = True) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.chmod(path, 0o755 if executable else 0o644)
    return path


def make_artifact(path: Path, triple: str = PI4_TRIPLE, unique: bool = False) -> Artifact:
    return Artifact(local_path=path, size_bytes=path.stat().st_size, triple=triple, unique=unique)


class LocalDirTransport:
    """RemoteTransport backed by a local directory standing in for the device.

    Failure injection:
        connect_failures: raise RemoteConnectionError on the next N connection checks
        truncate_uploads: write only half the bytes on the next N uploads
        fail_rename: every rename raises RemoteWriteError
        after_upload: callable invoked after each successful upload
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.connect_failures = 0
        self.truncate_uploads = 0
        self.fail_rename = False
        self.after_upload = None
        self.calls: List[str] = []

    def local(self, remote_path: str) -> Path:
        return self.root / remote_path.lstrip('/')

    def check_connection(self, host: HostProfile) -> None:
        self.calls.append('check_connection')
        if self.connect_failures:
            self.connect_failures -= 1
            raise RemoteConnectionError(f"Connection to {host.destination} refused")

    def upload(self, local_path: Path, host: HostProfile, remote_path: str) -> None:
        self.calls.append('upload')
        target = self.local(remote_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        content = Path(local_path).read_bytes()
        if self.truncate_uploads:
            self.truncate_uploads -= 1
            content = content[:len(content) // 2]
        target.write_bytes(content)
        if self.after_upload is not None:
            self.after_upload()

    def remote_size(self, host: HostProfile, remote_path: str) -> Optional[int]:
        self.calls.append('remote_size')
        target = self.local(remote_path)
        return target.stat().st_size if target.exists() else None

    def link(self, host: HostProfile, remote_path: str, link_path: str) -> bool:
        self.calls.append('link')
        source = self.local(remote_path)
        if not source.exists():
            return False
        link = self.local(link_path)
        if link.exists():
            link.unlink()
        os.link(source, link)
        return True

    def rename(self, host: HostProfile, src: str, dst: str) -> None:
        self.calls.append('rename')
        if self.fail_rename:
            raise RemoteWriteError(f"Cannot rename {src} to {dst}: Read-only file system")
        os.replace(self.local(src), self.local(dst))

    def remove(self, host: HostProfile, remote_path: str) -> None:
        self.calls.append('remove')
        target = self.local(remote_path)
        if target.exists():
            target.unlink()

    def listing(self) -> List[str]:
        """Relative paths of every file on the fake device."""
        return sorted(
            str(p.relative_to(self.root)) for p in self.root.rglob('*') if p.is_file()
        )


@pytest.fixture
def pi4_host():
    return HostProfile(address="pi.local", remote_path="/opt/app/main", user="pi")


@pytest.fixture
def pi4_spec(pi4_host):
    return TargetSpec(
        name="pi4",
        triple=PI4_TRIPLE,
        toolchain_package="gcc-arm-linux-gnueabihf",
        host=pi4_host,
        linker="arm-linux-gnueabihf-gcc",
    )


@pytest.fixture
def device(tmp_path):
    root = tmp_path / "device"
    root.mkdir()
    yield LocalDirTransport(root)
    shutil.rmtree(root, ignore_errors=True)
