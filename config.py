from __future__ import annotations

from dataclasses import dataclass
import os


_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().casefold()
    return normalized not in {"0", "false", "off", ""}


def _env_level(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    level = raw.strip().upper()
    return level if level in _LOG_LEVELS else default


@dataclass(frozen=True)
class DisasmConfig:
    show_regs: bool
    show_comments: bool
    json_output: bool
    log_level: str


def load_disasm_config() -> DisasmConfig:
    return DisasmConfig(
        show_regs=_env_flag("EBPF_DISASM_REGS", default=False),
        show_comments=_env_flag("EBPF_DISASM_COMMENTS", default=True),
        json_output=_env_flag("EBPF_DISASM_JSON", default=False),
        log_level=_env_level("EBPF_DISASM_LOG_LEVEL", default="WARNING"),
    )


__all__ = ["DisasmConfig", "load_disasm_config"]
