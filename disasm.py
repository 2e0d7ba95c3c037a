"""eBPF instruction decoder.

Every 64-bit pattern decodes to a DecodedInstruction; encodings with no
defined meaning come back as an ``unknown`` record rather than an error.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

import bpf
from bpf import AluOp, InsnClass, JmpOp, Mode, Size
from insn import Insn, iter_insns

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


@dataclass(frozen=True)
class DecodedInstruction:
    mnemonic: str
    operands: List[str] = field(default_factory=list)
    comment: Optional[str] = None
    reg_info: Optional[List[str]] = None

    @property
    def text(self) -> str:
        if not self.operands:
            return self.mnemonic
        return f"{self.mnemonic} {', '.join(self.operands)}"

    @property
    def is_unknown(self) -> bool:
        return self.mnemonic == UNKNOWN

    def to_dict(self) -> Dict[str, object]:
        d: Dict[str, object] = {"mnemonic": self.mnemonic, "operands": list(self.operands)}
        if self.comment is not None:
            d["comment"] = self.comment
        if self.reg_info is not None:
            d["regInfo"] = list(self.reg_info)
        return d


class EBPFDisassembler:
    # mnemonic, comment template
    ALU_OPS = {
        AluOp.ADD:  ("add",  "{dst} = {dst} + {val}"),
        AluOp.SUB:  ("sub",  "{dst} = {dst} - {val}"),
        AluOp.MUL:  ("mul",  "{dst} = {dst} * {val}"),
        AluOp.DIV:  ("div",  "{dst} = {dst} / {val}"),
        AluOp.OR:   ("or",   "{dst} = {dst} | {val}"),
        AluOp.AND:  ("and",  "{dst} = {dst} & {val}"),
        AluOp.LSH:  ("lsh",  "{dst} = {dst} << {val}"),
        AluOp.RSH:  ("rsh",  "{dst} = {dst} >> {val}"),
        AluOp.NEG:  ("neg",  "{dst} = -{dst}"),
        AluOp.MOD:  ("mod",  "{dst} = {dst} % {val}"),
        AluOp.XOR:  ("xor",  "{dst} = {dst} ^ {val}"),
        AluOp.MOV:  ("mov",  "{dst} = {val}"),
        AluOp.ARSH: ("arsh", "{dst} = {dst} >> {val} (arithmetic)"),
        AluOp.END:  ("end",  "Convert endianness of {dst}"),
    }

    # mnemonic, comparison, signed
    JMP_COND_OPS = {
        JmpOp.JEQ:  ("jeq",  "==", False),
        JmpOp.JGT:  ("jgt",  ">",  False),
        JmpOp.JGE:  ("jge",  ">=", False),
        JmpOp.JSET: ("jset", "&",  False),
        JmpOp.JNE:  ("jne",  "!=", False),
        JmpOp.JSGT: ("jsgt", ">",  True),
        JmpOp.JSGE: ("jsge", ">=", True),
        JmpOp.JLT:  ("jlt",  "<",  False),
        JmpOp.JLE:  ("jle",  "<=", False),
        JmpOp.JSLT: ("jslt", "<",  True),
        JmpOp.JSLE: ("jsle", "<=", True),
    }

    SIZE_SUFFIX = {Size.B: "b", Size.H: "h", Size.W: "w", Size.DW: "dw"}

    LOAD_MODES = (Mode.IMM, Mode.ABS, Mode.IND, Mode.MEM)
    STORE_MODES = (Mode.MEM, Mode.XADD)

    def _reg(self, n: int) -> str:
        return f"r{n}"

    def _reg_info(self, insn: Insn, src_used: bool) -> List[str]:
        info = [f"{self._reg(insn.dst)}: {bpf.reg_desc(insn.dst)}"]
        if src_used and insn.src != insn.dst:
            info.append(f"{self._reg(insn.src)}: {bpf.reg_desc(insn.src)}")
        return info

    @staticmethod
    def _fmt_off(off: int) -> str:
        return f"{off:+d}" if off else "0"

    def decode(self, insn: Insn) -> DecodedInstruction:
        cls = bpf.insn_class(insn.opcode)

        if cls in (InsnClass.ALU, InsnClass.ALU64):
            decoded = self._decode_alu(insn, cls)
        elif cls in (InsnClass.JMP, InsnClass.JMP32):
            decoded = self._decode_jmp(insn, cls)
        elif cls in (InsnClass.LD, InsnClass.LDX):
            decoded = self._decode_load(insn, cls)
        else:
            decoded = self._decode_store(insn, cls)

        if decoded is None:
            return self._unknown(insn)
        return decoded

    # ---- ALU / ALU64
    def _decode_alu(self, insn: Insn, cls: InsnClass) -> Optional[DecodedInstruction]:
        op = bpf.lookup_alu_op(insn.opcode)
        if op is None:
            return None

        suffix = "" if cls == InsnClass.ALU64 else "32"
        srcX = bpf.uses_src_reg(insn.opcode)
        dst = self._reg(insn.dst)
        val = self._reg(insn.src) if srcX else str(insn.imm)
        name, template = self.ALU_OPS[op]

        if op == AluOp.NEG:
            operands = [dst]
        elif op == AluOp.END:
            # imm selects the target width (16/32/64), it is not an operand value
            operands = [dst, str(insn.imm)]
        else:
            operands = [dst, val]

        return DecodedInstruction(
            mnemonic=f"{name}{suffix}",
            operands=operands,
            comment=template.format(dst=dst, val=val),
            reg_info=self._reg_info(insn, srcX),
        )

    # ---- JMP / JMP32
    def _decode_jmp(self, insn: Insn, cls: InsnClass) -> Optional[DecodedInstruction]:
        op = bpf.lookup_jmp_op(insn.opcode)
        if op is None:
            return None

        srcX = bpf.uses_src_reg(insn.opcode)
        reg_info = self._reg_info(insn, srcX)
        off = self._fmt_off(insn.off)

        if op == JmpOp.JA:
            return DecodedInstruction("ja", [off], f"Jump to {off} (unconditional)", reg_info)
        if op == JmpOp.CALL:
            return DecodedInstruction(
                "call", [str(insn.imm)], f"Call helper function {insn.imm}", reg_info
            )
        if op == JmpOp.EXIT:
            return DecodedInstruction("exit", [], "Return from program", reg_info)

        suffix = "32" if cls == InsnClass.JMP32 else ""
        name, cmp, signed = self.JMP_COND_OPS[op]
        dst = self._reg(insn.dst)
        val = self._reg(insn.src) if srcX else str(insn.imm)
        comment = f"if {dst} {cmp} {val} goto {off}"
        if signed:
            comment += " (signed)"
        return DecodedInstruction(f"{name}{suffix}", [dst, val, off], comment, reg_info)

    # ---- LD / LDX
    def _decode_load(self, insn: Insn, cls: InsnClass) -> Optional[DecodedInstruction]:
        mode = bpf.lookup_mode(insn.opcode)
        if mode not in self.LOAD_MODES:
            return None

        sz = self.SIZE_SUFFIX[bpf.insn_size(insn.opcode)]
        dst = self._reg(insn.dst)
        src = self._reg(insn.src)
        src_used = cls == InsnClass.LDX or mode in (Mode.MEM, Mode.IND)
        reg_info = self._reg_info(insn, src_used)

        if mode == Mode.IMM:
            return DecodedInstruction(f"ld{sz}", [dst, str(insn.imm)], f"{dst} = {insn.imm}", reg_info)
        if mode == Mode.MEM:
            addr = f"{src} + {insn.off}" if insn.off else src
        elif mode == Mode.ABS:
            # legacy packet access from classic BPF
            addr = str(insn.imm)
        else:
            addr = f"{src} + {insn.imm}"
        return DecodedInstruction(
            f"ld{sz}", [dst, f"[{addr}]"], f"{dst} = *({sz}*)({addr})", reg_info
        )

    # ---- ST / STX
    def _decode_store(self, insn: Insn, cls: InsnClass) -> Optional[DecodedInstruction]:
        mode = bpf.lookup_mode(insn.opcode)
        if mode not in self.STORE_MODES:
            return None

        sz = self.SIZE_SUFFIX[bpf.insn_size(insn.opcode)]
        dst = self._reg(insn.dst)
        src = self._reg(insn.src)
        addr = f"{dst} + {insn.off}" if insn.off else dst
        # MEM and XADD both count src as referenced
        reg_info = self._reg_info(insn, True)

        if mode == Mode.XADD:
            return DecodedInstruction(
                f"xadd{sz}", [f"[{addr}]", src], f"Atomic: *({sz}*)({addr}) += {src}", reg_info
            )
        value = str(insn.imm) if cls == InsnClass.ST else src
        return DecodedInstruction(
            f"st{sz}", [f"[{addr}]", value], f"*({sz}*)({addr}) = {value}", reg_info
        )

    def _unknown(self, insn: Insn) -> DecodedInstruction:
        return DecodedInstruction(
            mnemonic=UNKNOWN,
            operands=[
                f"op:{insn.opcode:02x}",
                f"r:{insn.dst},{insn.src}",
                f"off:{insn.off}",
                f"imm:{insn.imm}",
            ],
            comment="Unknown instruction",
            reg_info=self._reg_info(insn, True),
        )


_DISASSEMBLER = EBPFDisassembler()


def to_insn(instruction: Union[Insn, int, bytes]) -> Insn:
    if isinstance(instruction, Insn):
        return instruction
    if isinstance(instruction, (bytes, bytearray)):
        return Insn.from_bytes(bytes(instruction))
    if isinstance(instruction, int) and not isinstance(instruction, bool):
        return Insn.from_u64(instruction)
    raise TypeError(f"cannot decode {type(instruction).__name__} as an eBPF instruction")


def decode(instruction: Union[Insn, int, bytes]) -> DecodedInstruction:
    """Decode one instruction given as an Insn, a packed 64-bit word or 8 raw bytes."""
    return _DISASSEMBLER.decode(to_insn(instruction))


def decode_stream(code: bytes) -> Iterator[Tuple[int, Insn, DecodedInstruction]]:
    """Yield (index, insn, decoded) for each 8-byte word of code, in program order."""
    for i, insn in enumerate(iter_insns(code)):
        decoded = _DISASSEMBLER.decode(insn)
        if decoded.is_unknown:
            logger.debug("unknown instruction at %d: %s", i, insn.get_insn_hex())
        yield i, insn, decoded
