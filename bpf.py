# constants
from enum import IntEnum
from types import MappingProxyType
from typing import Optional

BPF_CLASS_MASK = 0x07
BPF_SIZE_MASK  = 0x18
BPF_MODE_MASK  = 0xE0
BPF_SRC_MASK   = 0x08  # 0: K (imm), 1: X (src reg)
BPF_OP_MASK    = 0xF0


class InsnClass(IntEnum):
    LD    = 0x00
    LDX   = 0x01
    ST    = 0x02
    STX   = 0x03
    ALU   = 0x04
    JMP   = 0x05
    JMP32 = 0x06
    ALU64 = 0x07


# Sizes (for LD/ST)
class Size(IntEnum):
    W  = 0x00  # 32-bit
    H  = 0x08  # 16-bit
    B  = 0x10  # 8-bit
    DW = 0x18  # 64-bit


# Modes (for LD/ST)
class Mode(IntEnum):
    IMM  = 0x00
    ABS  = 0x20
    IND  = 0x40
    MEM  = 0x60
    XADD = 0xC0


# ALU and jump ops share the same op bits, so they are kept apart
class AluOp(IntEnum):
    ADD  = 0x00
    SUB  = 0x10
    MUL  = 0x20
    DIV  = 0x30
    OR   = 0x40
    AND  = 0x50
    LSH  = 0x60
    RSH  = 0x70
    NEG  = 0x80
    MOD  = 0x90
    XOR  = 0xA0
    MOV  = 0xB0
    ARSH = 0xC0
    END  = 0xD0  # byte swap, imm holds the width


class JmpOp(IntEnum):
    JA   = 0x00
    JEQ  = 0x10
    JGT  = 0x20
    JGE  = 0x30
    JSET = 0x40
    JNE  = 0x50
    JSGT = 0x60
    JSGE = 0x70
    CALL = 0x80
    EXIT = 0x90
    JLT  = 0xA0
    JLE  = 0xB0
    JSLT = 0xC0
    JSLE = 0xD0


# Calling convention roles for r0..r10
REG_DESC = MappingProxyType({
    0: "Return value",
    1: "First argument / Scratch register",
    2: "Second argument / Scratch register",
    3: "Third argument / Scratch register",
    4: "Fourth argument / Scratch register",
    5: "Fifth argument / Scratch register",
    6: "Callee saved register",
    7: "Callee saved register",
    8: "Callee saved register",
    9: "Callee saved register",
    10: "Frame pointer (read-only)",
})

UNKNOWN_REG_DESC = "Unknown register"


def insn_class(opcode: int) -> InsnClass:
    # all eight 3-bit patterns are assigned
    return InsnClass(opcode & BPF_CLASS_MASK)


def insn_size(opcode: int) -> Size:
    return Size(opcode & BPF_SIZE_MASK)


_MODES   = {m.value: m for m in Mode}
_ALU_OPS = {o.value: o for o in AluOp}
_JMP_OPS = {o.value: o for o in JmpOp}


def lookup_mode(opcode: int) -> Optional[Mode]:
    """Return the Mode for the opcode's mode bits, or None when unassigned."""
    return _MODES.get(opcode & BPF_MODE_MASK)


def lookup_alu_op(opcode: int) -> Optional[AluOp]:
    return _ALU_OPS.get(opcode & BPF_OP_MASK)


def lookup_jmp_op(opcode: int) -> Optional[JmpOp]:
    return _JMP_OPS.get(opcode & BPF_OP_MASK)


def uses_src_reg(opcode: int) -> bool:
    return (opcode & BPF_SRC_MASK) != 0


def reg_desc(reg: int) -> str:
    return REG_DESC.get(reg, UNKNOWN_REG_DESC)
