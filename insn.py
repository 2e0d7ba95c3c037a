import logging
import struct
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)

INSN_SIZE = 8

U64_MASK = 0xFFFFFFFFFFFFFFFF


def s64(x: int) -> int:
    """Reinterpret the low 64 bits of x as a two's-complement signed value."""
    x &= U64_MASK
    return x if x < 0x8000000000000000 else x - 0x10000000000000000


def sign_extend(word: int, lsb: int, width: int) -> int:
    """Extract a signed bit field from a 64-bit word.

    The field's top bit is shifted up to bit 63 and the result is brought
    back down with an arithmetic right shift on the signed 64-bit value, so
    the sign is carried through exactly.
    """
    top = 64 - (lsb + width)
    return s64(word << top) >> (64 - width)


# ---------------------------------------------------------
# eBPF decoding utilities
# ---------------------------------------------------------
@dataclass(frozen=True)
class Insn:
    opcode: int
    dst: int
    src: int
    off: int
    imm: int

    def __post_init__(self):
        if not 0 <= self.opcode <= 0xFF:
            raise ValueError(f"opcode {self.opcode} does not fit in 8 bits")
        if not 0 <= self.dst <= 0x0F:
            raise ValueError(f"dst register {self.dst} does not fit in 4 bits")
        if not 0 <= self.src <= 0x0F:
            raise ValueError(f"src register {self.src} does not fit in 4 bits")
        if not -0x8000 <= self.off <= 0x7FFF:
            raise ValueError(f"offset {self.off} is not a signed 16-bit value")
        if not -0x80000000 <= self.imm <= 0x7FFFFFFF:
            raise ValueError(f"immediate {self.imm} is not a signed 32-bit value")

    @classmethod
    def from_bytes(cls, b: bytes) -> "Insn":
        if len(b) != INSN_SIZE:
            raise ValueError("eBPF instruction must be 8 bytes")
        opcode = b[0]
        regs = b[1]
        dst = regs & 0x0F
        src = (regs >> 4) & 0x0F
        off = struct.unpack_from("<h", b, 2)[0]   # int16
        imm = struct.unpack_from("<i", b, 4)[0]   # int32
        return cls(opcode, dst, src, off, imm)

    @classmethod
    def from_u64(cls, word: int) -> "Insn":
        """Split a packed instruction word.

        Accepts the unsigned 64-bit range and, for callers holding signed
        64-bit values, the negative half of the signed range.
        """
        if not -0x8000000000000000 <= word <= U64_MASK:
            raise ValueError(f"instruction word {word:#x} does not fit in 64 bits")
        word &= U64_MASK
        opcode = word & 0xFF
        dst = (word >> 8) & 0x0F
        src = (word >> 12) & 0x0F
        off = sign_extend(word, 16, 16)
        imm = sign_extend(word, 32, 32)
        return cls(opcode, dst, src, off, imm)

    def to_u64(self) -> int:
        return (
            self.opcode
            | (self.dst << 8)
            | (self.src << 12)
            | ((self.off & 0xFFFF) << 16)
            | ((self.imm & 0xFFFFFFFF) << 32)
        )

    def to_str(self) -> str:
        from disasm import decode  # local import to avoid circular ref
        return decode(self).text

    def to_bytes(self) -> bytes:
        regs = (self.src << 4) | self.dst
        return bytes([
            self.opcode,
            regs,
            self.off & 0xFF,
            (self.off >> 8) & 0xFF,
        ]) + self.imm.to_bytes(4, "little", signed=True)

    def get_insn_hex(self) -> str:
        return " ".join(f"{b:02X}" for b in self.to_bytes())


def iter_insns(code: bytes) -> Iterator[Insn]:
    """Slice a raw instruction buffer into successive 8-byte instructions."""
    if len(code) % INSN_SIZE != 0:
        raise ValueError("Instruction buffer size is not a multiple of 8 bytes")
    logger.debug("slicing %d instructions from %d bytes", len(code) // INSN_SIZE, len(code))
    for i in range(0, len(code), INSN_SIZE):
        yield Insn.from_bytes(code[i:i + INSN_SIZE])
