from __future__ import annotations

import os

from hypothesis import given, settings
from hypothesis import strategies as st

import bpf
from disasm import decode
from insn import Insn

MAX_EXAMPLES = int(os.getenv("EBPF_PROP_EXAMPLES", "500"))

words = st.integers(min_value=0, max_value=(1 << 64) - 1)


@st.composite
def insns(draw) -> Insn:
    return Insn(
        opcode=draw(st.integers(0, 0xFF)),
        dst=draw(st.integers(0, 0x0F)),
        src=draw(st.integers(0, 0x0F)),
        off=draw(st.integers(-0x8000, 0x7FFF)),
        imm=draw(st.integers(-0x80000000, 0x7FFFFFFF)),
    )


@given(word=words)
@settings(max_examples=MAX_EXAMPLES, deadline=None)
def test_decode_is_total_and_repeatable(word: int) -> None:
    first = decode(word)
    second = decode(word)
    assert first == second
    assert first.mnemonic
    assert first.reg_info
    assert all(isinstance(op, str) for op in first.operands)


@given(word=words)
@settings(max_examples=MAX_EXAMPLES, deadline=None)
def test_word_and_byte_forms_decode_alike(word: int) -> None:
    assert decode(word) == decode(word.to_bytes(8, "little"))
    assert Insn.from_u64(word).to_u64() == word


@given(insn=insns())
@settings(max_examples=MAX_EXAMPLES, deadline=None)
def test_fields_survive_packing(insn: Insn) -> None:
    assert Insn.from_u64(insn.to_u64()) == insn
    assert Insn.from_bytes(insn.to_bytes()) == insn


@given(insn=insns())
@settings(max_examples=MAX_EXAMPLES, deadline=None)
def test_reg_info_never_repeats_a_register(insn: Insn) -> None:
    info = decode(insn).reg_info
    assert info[0] == f"r{insn.dst}: {bpf.reg_desc(insn.dst)}"
    assert len(info) <= 2
    if len(info) == 2:
        assert insn.src != insn.dst
        assert info[1] == f"r{insn.src}: {bpf.reg_desc(insn.src)}"


@given(insn=insns())
@settings(max_examples=MAX_EXAMPLES, deadline=None)
def test_unknown_records_carry_raw_fields(insn: Insn) -> None:
    d = decode(insn)
    if d.mnemonic != "unknown":
        return
    assert d.comment == "Unknown instruction"
    assert d.operands == [
        f"op:{insn.opcode:02x}",
        f"r:{insn.dst},{insn.src}",
        f"off:{insn.off}",
        f"imm:{insn.imm}",
    ]
