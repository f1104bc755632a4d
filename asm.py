"""
CHIP-8 Assembler
=================
Translates assembly text into a CHIP-8 program image for the opcode
subset the interpreter implements.

Supports:
  - Labels (terminated with ':')
  - CLS, RET, JP, CALL, SE, SNE, LD, ADD, DRW (Cowgod-style syntax)
  - Immediate literals (decimal, hex with 0x or # prefix, binary 0b)
  - Comments (';' to end of line)
  - .org, .db, .dw directives

Usage:
  from asm import assemble
  rom = assemble(source_text)          # image for address 0x200
"""

from __future__ import annotations
import re

from chip8 import PROGRAM_BASE, MEM_SIZE

_LABEL_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*):")

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _parse_reg(tok: str) -> int | None:
    """Parse 'V0'-'VF'.  Returns register index or None."""
    tok = tok.strip().upper()
    if len(tok) == 2 and tok[0] == "V":
        try:
            return int(tok[1], 16)
        except ValueError:
            return None
    return None

def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, 0x/# hex, 0b binary)."""
    tok = tok.strip()
    if tok.startswith("#"):
        return int(tok[1:], 16)
    return int(tok, 0)

def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]

def _split_mnemonic(text: str) -> tuple[str, str]:
    parts = text.split(None, 1)
    mnem = parts[0].lower()
    rest = parts[1] if len(parts) > 1 else ""
    return mnem, rest

def _strip_comment(line: str) -> str:
    idx = line.find(";")
    if idx >= 0:
        line = line[:idx]
    return line.strip()

# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def assemble(source: str, base_addr: int = PROGRAM_BASE,
             listing: bool = False) -> bytearray:
    """Assemble *source* into a program image loaded at *base_addr*.

    Pass 1 collects label addresses, pass 2 emits bytes.  Gaps left by
    ``.org`` are zero-filled.
    """
    lines = source.splitlines()

    # Pass 1: labels
    labels: dict[str, int] = {}
    pc = base_addr
    for lineno, raw in enumerate(lines, 1):
        text = _strip_comment(raw)
        while True:
            m = _LABEL_RE.match(text)
            if not m:
                break
            name = m.group(1).lower()
            if name in labels:
                raise AsmError(lineno, f"Duplicate label: {m.group(1)}")
            labels[name] = pc
            text = text[m.end():].strip()
        if not text:
            continue
        pc = _advance(lineno, text, pc, base_addr)

    # Pass 2: emit
    out = bytearray()
    pc = base_addr
    listing_lines: list[str] = []
    for lineno, raw in enumerate(lines, 1):
        text = _strip_comment(raw)
        while True:
            m = _LABEL_RE.match(text)
            if not m:
                break
            text = text[m.end():].strip()
        if not text:
            continue
        mnem, rest = _split_mnemonic(text)
        if mnem == ".org":
            target = _resolve(lineno, rest, labels)
            _check_org(lineno, target, pc, base_addr)
            out.extend(bytes(target - pc))
            pc = target
            continue
        if mnem in (".db", ".byte"):
            data = bytes(_resolve(lineno, t, labels, bits=8) for t in _split_ops(rest))
        elif mnem in (".dw", ".word"):
            data = bytearray()
            for t in _split_ops(rest):
                w = _resolve(lineno, t, labels, bits=16)
                data += bytes([(w >> 8) & 0xFF, w & 0xFF])
        else:
            word = _encode(lineno, mnem, _split_ops(rest), labels)
            data = bytes([(word >> 8) & 0xFF, word & 0xFF])
        if listing:
            listing_lines.append(f"{pc:04X}  {data.hex(' '):<12s} {text}")
        out += data
        pc += len(data)

    if pc > MEM_SIZE:
        raise AsmError(len(lines), f"Program overflows memory (ends at {pc:#x})")
    if listing:
        print("\n".join(listing_lines))
    return out


def _check_org(lineno: int, target: int, pc: int, base_addr: int):
    if target < pc:
        raise AsmError(lineno, f".org {target:#x} moves backwards from {pc:#x}")
    if target > MEM_SIZE:
        raise AsmError(lineno, f".org {target:#x} beyond end of memory")


def _advance(lineno: int, text: str, pc: int, base_addr: int) -> int:
    """Return the address following the statement in *text*."""
    mnem, rest = _split_mnemonic(text)
    if mnem == ".org":
        try:
            target = _parse_imm(rest)
        except ValueError:
            raise AsmError(lineno, f".org needs a numeric address: {rest!r}")
        _check_org(lineno, target, pc, base_addr)
        return target
    if mnem in (".db", ".byte"):
        return pc + len(_split_ops(rest))
    if mnem in (".dw", ".word"):
        return pc + 2 * len(_split_ops(rest))
    return pc + 2


def _resolve(lineno: int, tok: str, labels: dict, bits: int = 12) -> int:
    tok = tok.strip()
    key = tok.lower()
    if key in labels:
        val = labels[key]
    else:
        try:
            val = _parse_imm(tok)
        except ValueError:
            raise AsmError(lineno, f"Undefined label or bad number: {tok!r}")
    if not 0 <= val < (1 << bits):
        raise AsmError(lineno, f"Value {val:#x} does not fit in {bits} bits")
    return val


def _need(lineno: int, mnem: str, ops: list[str], count: int):
    if len(ops) != count:
        raise AsmError(lineno, f"{mnem.upper()} expects {count} operand(s), got {len(ops)}")


def _reg(lineno: int, tok: str) -> int:
    r = _parse_reg(tok)
    if r is None:
        raise AsmError(lineno, f"Expected register V0-VF, got {tok!r}")
    return r


def _encode(lineno: int, mnem: str, ops: list[str], labels: dict) -> int:
    """Encode one instruction to its 16-bit word."""
    if mnem == "cls":
        _need(lineno, mnem, ops, 0)
        return 0x00E0
    if mnem == "ret":
        _need(lineno, mnem, ops, 0)
        return 0x00EE
    if mnem == "jp":
        _need(lineno, mnem, ops, 1)
        return 0x1000 | _resolve(lineno, ops[0], labels)
    if mnem == "call":
        _need(lineno, mnem, ops, 1)
        return 0x2000 | _resolve(lineno, ops[0], labels)
    if mnem in ("se", "sne"):
        _need(lineno, mnem, ops, 2)
        x = _reg(lineno, ops[0])
        if _parse_reg(ops[1]) is not None:
            raise AsmError(lineno, f"{mnem.upper()} Vx, Vy is not supported")
        base = 0x3000 if mnem == "se" else 0x4000
        return base | (x << 8) | _resolve(lineno, ops[1], labels, bits=8)
    if mnem == "drw":
        _need(lineno, mnem, ops, 3)
        x = _reg(lineno, ops[0])
        y = _reg(lineno, ops[1])
        n = _resolve(lineno, ops[2], labels, bits=4)
        return 0xD000 | (x << 8) | (y << 4) | n
    if mnem == "add":
        _need(lineno, mnem, ops, 2)
        if ops[0].upper() == "I":
            return 0xF01E | (_reg(lineno, ops[1]) << 8)
        x = _reg(lineno, ops[0])
        if _parse_reg(ops[1]) is not None:
            raise AsmError(lineno, "ADD Vx, Vy is not supported")
        return 0x7000 | (x << 8) | _resolve(lineno, ops[1], labels, bits=8)
    if mnem == "ld":
        _need(lineno, mnem, ops, 2)
        dst, src = ops[0].upper(), ops[1].upper()
        if dst == "I":
            return 0xA000 | _resolve(lineno, ops[1], labels)
        if dst == "F":
            return 0xF029 | (_reg(lineno, ops[1]) << 8)
        if dst == "B":
            return 0xF033 | (_reg(lineno, ops[1]) << 8)
        x = _reg(lineno, ops[0])
        if src == "[I]":
            return 0xF065 | (x << 8)
        if _parse_reg(ops[1]) is not None:
            raise AsmError(lineno, "LD Vx, Vy is not supported")
        return 0x6000 | (x << 8) | _resolve(lineno, ops[1], labels, bits=8)
    raise AsmError(lineno, f"Unknown mnemonic: {mnem!r}")
