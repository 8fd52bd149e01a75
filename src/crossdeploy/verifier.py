"""Local safety gate run on every artifact before it leaves the build machine.

Checks, in order:
    1. size > 0 (EmptyArtifact, regardless of triple)
    2. artifact.triple == expected triple (TripleMismatch)
    3. execute permission bit set (NotExecutable; skipped for windows triples)
    4. ELF header e_machine / class / byte order match the triple's
       architecture (TripleMismatch)

Step 4 is best-effort: for PE, Mach-O or unrecognized formats, and for
architectures without a known ELF machine, the architecture check is a no-op
and the returned VerificationReport says so (``arch_checked=False`` plus a
``note``). It never silently reports a pass. A file with the ELF magic but
an unparseable header fails with TripleMismatch.
"""

import io
import logging
from typing import NamedTuple, Optional, Tuple, Union

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from crossdeploy.core.protocols import FileSystemService
from crossdeploy.exceptions import EmptyArtifact, NotExecutable, TripleMismatch
from crossdeploy.models import Artifact, VerificationReport

logger = logging.getLogger(__name__)

ELF_MAGIC = b'\x7fELF'
MACHO_MAGICS = (
    b'\xfe\xed\xfa\xce', b'\xfe\xed\xfa\xcf',
    b'\xce\xfa\xed\xfe', b'\xcf\xfa\xed\xfe',
    b'\xca\xfe\xba\xbe',
)


class ArchSignature(NamedTuple):
    # pyelftools e_machine name ("EM_ARM"), or the raw number if it has none
    machine: Union[str, int]
    elf_class: int
    # None when the architecture name does not pin the byte order
    little_endian: Optional[bool]


# Ordered: first matching prefix wins
ARCH_PREFIXES: Tuple[Tuple[str, ArchSignature], ...] = (
    ('aarch64_be', ArchSignature('EM_AARCH64', 64, False)),
    ('aarch64', ArchSignature('EM_AARCH64', 64, True)),
    ('arm64', ArchSignature('EM_AARCH64', 64, True)),
    ('armeb', ArchSignature('EM_ARM', 32, False)),
    ('arm', ArchSignature('EM_ARM', 32, True)),
    ('thumb', ArchSignature('EM_ARM', 32, True)),
    ('x86_64', ArchSignature('EM_X86_64', 64, True)),
    ('i386', ArchSignature('EM_386', 32, True)),
    ('i586', ArchSignature('EM_386', 32, True)),
    ('i686', ArchSignature('EM_386', 32, True)),
    ('riscv64', ArchSignature('EM_RISCV', 64, True)),
    ('riscv32', ArchSignature('EM_RISCV', 32, True)),
    ('mips64el', ArchSignature('EM_MIPS', 64, True)),
    ('mips64', ArchSignature('EM_MIPS', 64, False)),
    ('mipsel', ArchSignature('EM_MIPS', 32, True)),
    ('mips', ArchSignature('EM_MIPS', 32, False)),
    ('powerpc64le', ArchSignature('EM_PPC64', 64, True)),
    ('powerpc64', ArchSignature('EM_PPC64', 64, False)),
    ('powerpc', ArchSignature('EM_PPC', 32, False)),
    ('s390x', ArchSignature('EM_S390', 64, False)),
    ('sparc64', ArchSignature('EM_SPARCV9', 64, False)),
)


def arch_signature(triple: str) -> Optional[ArchSignature]:
    """Expected ELF signature for a triple, or None if unknown."""
    arch = triple.split('-', 1)[0].lower()
    for prefix, signature in ARCH_PREFIXES:
        if arch.startswith(prefix):
            return signature
    return None


def detect_format(header: bytes) -> str:
    if header.startswith(ELF_MAGIC):
        return 'elf'
    if header.startswith(b'MZ'):
        return 'pe'
    if header[:4] in MACHO_MAGICS:
        return 'mach-o'
    return 'unknown'


def parse_elf_signature(image: bytes) -> ArchSignature:
    """Machine, class and byte order of an ELF image.

    Raises:
        ELFError: pyelftools cannot parse the header
    """
    elf = ELFFile(io.BytesIO(image))
    return ArchSignature(elf.header['e_machine'], elf.elfclass, elf.little_endian)


def read_elf_signature(image: bytes) -> Optional[ArchSignature]:
    """Like parse_elf_signature, but None if the header is not parseable."""
    try:
        return parse_elf_signature(image)
    except ELFError as e:
        logger.debug("ELF header not parseable: %s", e)
        return None


def describe(signature: ArchSignature) -> str:
    machine = signature.machine
    if isinstance(machine, str):
        name = machine[3:].lower() if machine.startswith('EM_') else machine
    else:
        name = f"machine {machine}"
    order = {True: 'LE', False: 'BE'}.get(signature.little_endian, '?')
    return f"{name} {signature.elf_class}-bit {order}"


class ArtifactVerifier:
    """Pure, local checks on a built artifact. Reads the file, never writes."""

    def __init__(self, filesystem: FileSystemService):
        self.fs = filesystem

    def check(self, artifact: Artifact, expected_triple: str) -> VerificationReport:
        """Verify ``artifact`` was built for ``expected_triple``.

        Raises:
            EmptyArtifact: declared or on-disk size is zero (or the file is gone)
            TripleMismatch: wrong triple, or ELF header encodes another architecture
                or cannot be parsed
            NotExecutable: no execute permission bit
        """
        path = artifact.local_path
        if artifact.size_bytes <= 0:
            raise EmptyArtifact(f"Artifact {path} is empty (0 bytes)")
        if not self.fs.is_file(path):
            raise EmptyArtifact(f"Artifact {path} does not exist")
        if self.fs.file_size(path) <= 0:
            raise EmptyArtifact(f"Artifact {path} is empty on disk")

        if artifact.triple != expected_triple:
            raise TripleMismatch(
                f"Artifact was built for {artifact.triple}, expected {expected_triple}",
                expected=expected_triple,
                actual=artifact.triple
            )

        if 'windows' not in expected_triple and not self.fs.is_executable(path):
            raise NotExecutable(f"Artifact {path} has no execute permission")

        fmt = detect_format(self.fs.read_bytes(path, len(ELF_MAGIC)))
        if fmt != 'elf':
            return VerificationReport(
                artifact=artifact,
                arch_checked=False,
                detected_format=fmt,
                note=f"{fmt} binaries are not inspected; architecture check skipped"
            )

        try:
            actual = parse_elf_signature(self.fs.read_bytes(path))
        except ELFError as e:
            raise TripleMismatch(
                f"Artifact {path} has an unreadable ELF header: {e}",
                expected=expected_triple,
                actual="unreadable ELF header"
            ) from e
        expected = arch_signature(expected_triple)
        if expected is None:
            return VerificationReport(
                artifact=artifact,
                arch_checked=False,
                detected_format=fmt,
                detected_machine=describe(actual),
                note=f"No known ELF machine for {expected_triple}; architecture check skipped"
            )

        mismatched = (
            actual.machine != expected.machine
            or actual.elf_class != expected.elf_class
            or (expected.little_endian is not None
                and actual.little_endian != expected.little_endian)
        )
        if mismatched:
            raise TripleMismatch(
                f"Artifact {path} is {describe(actual)}, "
                f"but {expected_triple} needs {describe(expected)}",
                expected=expected_triple,
                actual=describe(actual)
            )

        return VerificationReport(
            artifact=artifact,
            arch_checked=True,
            detected_format=fmt,
            detected_machine=describe(actual)
        )
