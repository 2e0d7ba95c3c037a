import pytest

from insn import Insn, iter_insns, s64, sign_extend


def test_from_bytes_splits_fields() -> None:
    # stxdw [r10-8], r1
    insn = Insn.from_bytes(bytes([0x7B, 0x1A, 0xF8, 0xFF, 0x00, 0x00, 0x00, 0x00]))
    assert insn == Insn(opcode=0x7B, dst=10, src=1, off=-8, imm=0)


def test_from_bytes_rejects_short_buffer() -> None:
    with pytest.raises(ValueError):
        Insn.from_bytes(b"\x95\x00\x00\x00")


def test_from_u64_sign_extends_all_ones_fields() -> None:
    insn = Insn.from_u64(0xFFFFFFFF_FFFF_00_05)
    assert insn.off == -1
    assert insn.imm == -1
    assert insn.opcode == 0x05


def test_from_u64_keeps_positive_maxima() -> None:
    insn = Insn.from_u64(0x7FFFFFFF_7FFF_00_07)
    assert insn.off == 0x7FFF
    assert insn.imm == 0x7FFFFFFF


def test_from_u64_field_layout() -> None:
    # opcode 0x61, dst 2, src 1, off 4, imm -2
    insn = Insn.from_u64(0xFFFFFFFE_0004_12_61)
    assert (insn.opcode, insn.dst, insn.src, insn.off, insn.imm) == (0x61, 2, 1, 4, -2)


def test_from_u64_accepts_signed_word() -> None:
    assert Insn.from_u64(-1) == Insn.from_u64(0xFFFFFFFFFFFFFFFF)


@pytest.mark.parametrize("word", [1 << 64, -(1 << 63) - 1])
def test_from_u64_rejects_out_of_range(word: int) -> None:
    with pytest.raises(ValueError):
        Insn.from_u64(word)


def test_word_and_bytes_agree() -> None:
    word = 0x00000010_FFF0_A3_63
    insn = Insn.from_u64(word)
    assert Insn.from_bytes(word.to_bytes(8, "little")) == insn
    assert insn.to_u64() == word
    assert insn.to_bytes() == word.to_bytes(8, "little")


def test_get_insn_hex() -> None:
    assert Insn(0x95, 0, 0, 0, 0).get_insn_hex() == "95 00 00 00 00 00 00 00"
    assert Insn(0x07, 1, 0, 0, -1).get_insn_hex() == "07 01 00 00 FF FF FF FF"


def test_to_str() -> None:
    assert Insn(0x07, 1, 0, 0, 10).to_str() == "add r1, 10"
    assert Insn(0x95, 0, 0, 0, 0).to_str() == "exit"


@pytest.mark.parametrize(
    "fields",
    [
        dict(opcode=0x100, dst=0, src=0, off=0, imm=0),
        dict(opcode=0x07, dst=16, src=0, off=0, imm=0),
        dict(opcode=0x07, dst=0, src=-1, off=0, imm=0),
        dict(opcode=0x07, dst=0, src=0, off=0x8000, imm=0),
        dict(opcode=0x07, dst=0, src=0, off=0, imm=1 << 31),
    ],
)
def test_insn_rejects_fields_wider_than_their_width(fields) -> None:
    with pytest.raises(ValueError):
        Insn(**fields)


def test_sign_extend_helpers() -> None:
    assert s64(0xFFFFFFFFFFFFFFFF) == -1
    assert s64(0x7FFFFFFFFFFFFFFF) == 0x7FFFFFFFFFFFFFFF
    assert sign_extend(0x8000_0000, 16, 16) == -0x8000
    assert sign_extend(0x8000_0000_0000_0000, 32, 32) == -0x80000000
    assert sign_extend(0x0001_0000, 16, 16) == 1


def test_iter_insns_slices_in_order() -> None:
    code = bytes([0xB7, 0x00, 0, 0, 0, 0, 0, 0]) + bytes([0x95, 0, 0, 0, 0, 0, 0, 0])
    opcodes = [insn.opcode for insn in iter_insns(code)]
    assert opcodes == [0xB7, 0x95]


def test_iter_insns_rejects_ragged_buffer() -> None:
    with pytest.raises(ValueError):
        list(iter_insns(b"\x95" * 12))
