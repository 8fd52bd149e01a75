"""Unit tests for ArtifactVerifier and ELF header inspection."""

import pytest

from crossdeploy.core import RealFileSystemService
from crossdeploy.exceptions import EmptyArtifact, NotExecutable, TripleMismatch
from crossdeploy.models import Artifact
from crossdeploy.verifier import (
    ArchSignature,
    ArtifactVerifier,
    arch_signature,
    detect_format,
    read_elf_signature,
)

from conftest import PI4_TRIPLE, elf_image, make_artifact, write_binary

EM_ARM = 40
EM_X86_64 = 62
EM_AARCH64 = 183


class TestArchSignature:

    @pytest.mark.parametrize("triple,machine,elf_class", [
        (PI4_TRIPLE, "EM_ARM", 32),
        ("thumbv7neon-unknown-linux-gnueabihf", "EM_ARM", 32),
        ("aarch64-unknown-linux-gnu", "EM_AARCH64", 64),
        ("x86_64-unknown-linux-musl", "EM_X86_64", 64),
        ("i686-unknown-linux-gnu", "EM_386", 32),
        ("riscv64gc-unknown-linux-gnu", "EM_RISCV", 64),
    ])
    def test_known_triples(self, triple, machine, elf_class):
        signature = arch_signature(triple)

        assert signature.machine == machine
        assert signature.elf_class == elf_class

    def test_unknown_arch(self):
        assert arch_signature("wasm32-unknown-unknown") is None

    def test_detect_format(self):
        assert detect_format(elf_image(EM_ARM)) == 'elf'
        assert detect_format(b'MZ\x90\x00') == 'pe'
        assert detect_format(b'\xcf\xfa\xed\xfe') == 'mach-o'
        assert detect_format(b'#!/bin/sh\n') == 'unknown'

    def test_read_big_endian_image(self):
        image = elf_image(8, elf_class=1, data=2)

        assert read_elf_signature(image) == ArchSignature("EM_MIPS", 32, False)

    def test_truncated_header(self):
        assert read_elf_signature(elf_image(EM_ARM)[:10]) is None


class TestArtifactVerifier:

    def setup_method(self):
        self.verifier = ArtifactVerifier(RealFileSystemService())

    def test_matching_elf_passes(self, tmp_path):
        path = write_binary(tmp_path / 'main', elf_image(EM_ARM))

        report = self.verifier.check(make_artifact(path), PI4_TRIPLE)

        assert report.arch_checked is True
        assert report.detected_format == 'elf'
        assert report.detected_machine == 'arm 32-bit LE'
        assert report.note is None

    def test_zero_size_always_fails(self, tmp_path):
        path = write_binary(tmp_path / 'main', b'')
        artifact = Artifact(local_path=path, size_bytes=0, triple=PI4_TRIPLE)

        with pytest.raises(EmptyArtifact):
            self.verifier.check(artifact, PI4_TRIPLE)
        # Size is checked before the triple
        with pytest.raises(EmptyArtifact):
            self.verifier.check(artifact, "aarch64-unknown-linux-gnu")

    def test_file_emptied_after_build(self, tmp_path):
        path = write_binary(tmp_path / 'main', b'')
        artifact = Artifact(local_path=path, size_bytes=4096, triple=PI4_TRIPLE)

        with pytest.raises(EmptyArtifact, match="empty on disk"):
            self.verifier.check(artifact, PI4_TRIPLE)

    def test_missing_file(self, tmp_path):
        artifact = Artifact(local_path=tmp_path / 'gone', size_bytes=10, triple=PI4_TRIPLE)

        with pytest.raises(EmptyArtifact, match="does not exist"):
            self.verifier.check(artifact, PI4_TRIPLE)

    def test_triple_mismatch(self, tmp_path):
        path = write_binary(tmp_path / 'main', elf_image(EM_ARM))

        with pytest.raises(TripleMismatch) as exc_info:
            self.verifier.check(make_artifact(path), "aarch64-unknown-linux-gnu")

        assert exc_info.value.expected == "aarch64-unknown-linux-gnu"
        assert exc_info.value.actual == PI4_TRIPLE

    def test_elf_machine_mismatch(self, tmp_path):
        # Host x86_64 binary labelled as an ARM build
        path = write_binary(tmp_path / 'main', elf_image(EM_X86_64, elf_class=2))

        with pytest.raises(TripleMismatch, match="x86_64 64-bit LE"):
            self.verifier.check(make_artifact(path), PI4_TRIPLE)

    def test_elf_class_mismatch(self, tmp_path):
        path = write_binary(tmp_path / 'main', elf_image(EM_AARCH64, elf_class=1))
        artifact = make_artifact(path, triple="aarch64-unknown-linux-gnu")

        with pytest.raises(TripleMismatch):
            self.verifier.check(artifact, "aarch64-unknown-linux-gnu")

    def test_byte_order_mismatch(self, tmp_path):
        path = write_binary(tmp_path / 'main', elf_image(8, elf_class=1, data=2))
        artifact = make_artifact(path, triple="mipsel-unknown-linux-gnu")

        with pytest.raises(TripleMismatch):
            self.verifier.check(artifact, "mipsel-unknown-linux-gnu")

    @pytest.mark.parametrize("corrupt", [
        lambda image: image[:4] + bytes([7]) + image[5:],  # EI_CLASS
        lambda image: image[:20],
    ], ids=["bad-ei-class", "truncated-header"])
    def test_unparseable_elf_header_fails(self, tmp_path, corrupt):
        path = write_binary(tmp_path / 'main', corrupt(elf_image(EM_ARM)))

        with pytest.raises(TripleMismatch, match="unreadable ELF header") as exc_info:
            self.verifier.check(make_artifact(path), PI4_TRIPLE)

        assert exc_info.value.expected == PI4_TRIPLE

    def test_not_executable(self, tmp_path):
        path = write_binary(tmp_path / 'main', elf_image(EM_ARM), executable=False)

        with pytest.raises(NotExecutable):
            self.verifier.check(make_artifact(path), PI4_TRIPLE)

    def test_windows_skips_execute_bit_and_arch(self, tmp_path):
        triple = "x86_64-pc-windows-gnu"
        path = write_binary(tmp_path / 'main.exe', b'MZ' + bytes(100), executable=False)

        report = self.verifier.check(make_artifact(path, triple=triple), triple)

        assert report.arch_checked is False
        assert report.detected_format == 'pe'
        assert "skipped" in report.note

    def test_unknown_arch_is_best_effort(self, tmp_path):
        triple = "xtensa-esp32-espidf"
        path = write_binary(tmp_path / 'main', elf_image(94))

        report = self.verifier.check(make_artifact(path, triple=triple), triple)

        assert report.arch_checked is False
        assert report.detected_machine.endswith("32-bit LE")
        assert triple in report.note
