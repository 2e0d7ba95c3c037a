import sys
import json
import logging
import argparse
from typing import List, Optional, Tuple

from config import DisasmConfig, load_disasm_config
from disasm import DecodedInstruction, decode, decode_stream
from insn import Insn

logger = logging.getLogger(__name__)


def parse_word(text: str) -> int:
    """Parse a packed instruction word given as 0x-prefixed hex or decimal."""
    try:
        return int(text.replace("_", ""), 0)
    except ValueError:
        raise ValueError(f"not an instruction word: {text!r}") from None


def format_line(index: int, insn: Insn, decoded: DecodedInstruction, cfg: DisasmConfig) -> List[str]:
    line = f"{index:04X}:  {insn.get_insn_hex()}  {decoded.text}"
    if cfg.show_comments and decoded.comment:
        line += f"  ; {decoded.comment}"
    lines = [line]
    if cfg.show_regs and decoded.reg_info:
        pad = " " * 7
        lines.extend(f"{pad}; {info}" for info in decoded.reg_info)
    return lines


def collect(words: List[str], path: Optional[str]) -> List[Tuple[int, Insn, DecodedInstruction]]:
    if path:
        with open(path, "rb") as f:
            code = f.read()
        return list(decode_stream(code))

    rows = []
    for i, text in enumerate(words):
        insn = Insn.from_u64(parse_word(text))
        rows.append((i, insn, decode(insn)))
    return rows


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Disassemble eBPF instruction words")
    p.add_argument("words", nargs="*", help="Packed 64-bit instruction words (0x... or decimal)")
    p.add_argument("--file", help="Raw instruction bytes (already extracted, 8 bytes per instruction)")
    p.add_argument("--json", action="store_true", default=None, help="Print decoded records as JSON")
    p.add_argument("--regs", action="store_true", default=None, help="Show register roles")
    p.add_argument("--no-comments", action="store_true", help="Hide instruction comments")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return p


def main(argv: List[str]) -> int:

    p = build_parser()
    args = p.parse_args(argv)

    env = load_disasm_config()
    cfg = DisasmConfig(
        show_regs=env.show_regs if args.regs is None else args.regs,
        show_comments=env.show_comments and not args.no_comments,
        json_output=env.json_output if args.json is None else args.json,
        log_level="DEBUG" if args.verbose else env.log_level,
    )
    logging.basicConfig(level=cfg.log_level, format="%(levelname)s %(name)s: %(message)s")

    if not args.words and not args.file:
        p.error("give instruction words or --file")

    try:
        rows = collect(args.words, args.file)
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.debug("decoded %d instructions", len(rows))

    if cfg.json_output:
        out = []
        for i, insn, decoded in rows:
            rec = {"index": i, "hex": insn.get_insn_hex()}
            rec.update(decoded.to_dict())
            out.append(rec)
        print(json.dumps(out, indent=2))
        return 0

    for i, insn, decoded in rows:
        for line in format_line(i, insn, decoded, cfg):
            print(line)
    return 0


def run() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
