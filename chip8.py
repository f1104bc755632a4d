"""
CHIP-8 Bytecode Virtual Machine
================================
A cycle-step interpreter for CHIP-8 programs: 4 KiB of memory, sixteen
8-bit V registers, a 16-bit index register, a 16-deep call stack, two
60 Hz countdown timers and a 64x32 monochrome framebuffer.

Each call to ``Chip8.cycle()`` fetches one big-endian instruction word at
PC, decodes it and executes it.  Only the documented opcode subset is
implemented; every other encoding halts the machine and comes back as
an ``UnknownOpcodeError`` in the returned ``CycleResult``.
"""

from __future__ import annotations
from typing import NamedTuple, Optional

from config import Quirks
from devices import Framebuffer, Keypad, TimerUnit

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MEM_SIZE     = 0x1000
ADDR_MASK    = 0x0FFF
PROGRAM_BASE = 0x200
MAX_ROM_SIZE = MEM_SIZE - PROGRAM_BASE   # 3584 bytes

NUM_REGS     = 16
FLAG_REG     = 0xF   # VF: carry / borrow / collision
STACK_DEPTH  = 16

FONT_BASE    = 0x000
GLYPH_SIZE   = 5

FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

# Mnemonics produced by decode()
OP_CLS     = "CLS"
OP_RET     = "RET"
OP_JP      = "JP"
OP_CALL    = "CALL"
OP_SE      = "SE"
OP_SNE     = "SNE"
OP_LD      = "LD"
OP_ADD     = "ADD"
OP_LD_I    = "LD I"
OP_DRW     = "DRW"
OP_ADD_I   = "ADD I"
OP_LD_F    = "LD F"
OP_LD_B    = "LD B"
OP_LD_V    = "LD V"
OP_UNKNOWN = "???"

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class Chip8Error(Exception):
    """Base for all virtual machine errors."""
    pass

class LoadError(Chip8Error):
    pass

class HaltError(Chip8Error):
    pass

class FatalError(Chip8Error):
    """An error that leaves the machine halted until the next init()."""

    def __init__(self, pc: int, message: str):
        self.pc = pc
        super().__init__(message)

class UnknownOpcodeError(FatalError):
    def __init__(self, word: int, pc: int):
        self.word = word
        super().__init__(pc, f"Unknown opcode {word:#06x} @ {pc:#05x}")

class StackOverflowError(FatalError):
    pass

class StackUnderflowError(FatalError):
    pass

# ---------------------------------------------------------------------------
#  Instruction decoding
# ---------------------------------------------------------------------------

class Instruction(NamedTuple):
    word: int
    op: str
    x: int = 0
    y: int = 0
    n: int = 0
    nn: int = 0
    nnn: int = 0

    def __str__(self) -> str:
        return format_instruction(self)


class CycleResult(NamedTuple):
    """Outcome of one cycle.  ``error`` is set when the instruction halted
    the machine; nothing was executed in that case."""
    ins: Instruction
    error: Optional[FatalError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word.  Never raises; unknown encodings
    come back with ``op == OP_UNKNOWN``."""
    word &= 0xFFFF
    family = (word >> 12) & 0xF
    x   = (word >> 8) & 0xF
    y   = (word >> 4) & 0xF
    n   = word & 0xF
    nn  = word & 0xFF
    nnn = word & 0xFFF

    if family == 0x0:
        if word == 0x00E0:
            return Instruction(word, OP_CLS)
        if word == 0x00EE:
            return Instruction(word, OP_RET)
    elif family == 0x1:
        return Instruction(word, OP_JP, nnn=nnn)
    elif family == 0x2:
        return Instruction(word, OP_CALL, nnn=nnn)
    elif family == 0x3:
        return Instruction(word, OP_SE, x=x, nn=nn)
    elif family == 0x4:
        return Instruction(word, OP_SNE, x=x, nn=nn)
    elif family == 0x6:
        return Instruction(word, OP_LD, x=x, nn=nn)
    elif family == 0x7:
        return Instruction(word, OP_ADD, x=x, nn=nn)
    elif family == 0xA:
        return Instruction(word, OP_LD_I, nnn=nnn)
    elif family == 0xD:
        return Instruction(word, OP_DRW, x=x, y=y, n=n)
    elif family == 0xF:
        if nn == 0x1E: return Instruction(word, OP_ADD_I, x=x)
        if nn == 0x29: return Instruction(word, OP_LD_F, x=x)
        if nn == 0x33: return Instruction(word, OP_LD_B, x=x)
        if nn == 0x65: return Instruction(word, OP_LD_V, x=x)
    return Instruction(word, OP_UNKNOWN)


def format_instruction(ins: Instruction) -> str:
    """Render an instruction in assembler syntax (see asm.py)."""
    op = ins.op
    if op in (OP_CLS, OP_RET):
        return op
    if op in (OP_JP, OP_CALL):
        return f"{op} {ins.nnn:#05x}"
    if op in (OP_SE, OP_SNE, OP_LD, OP_ADD):
        return f"{op} V{ins.x:X}, {ins.nn:#04x}"
    if op == OP_LD_I:
        return f"LD I, {ins.nnn:#05x}"
    if op == OP_DRW:
        return f"DRW V{ins.x:X}, V{ins.y:X}, {ins.n}"
    if op == OP_ADD_I:
        return f"ADD I, V{ins.x:X}"
    if op == OP_LD_F:
        return f"LD F, V{ins.x:X}"
    if op == OP_LD_B:
        return f"LD B, V{ins.x:X}"
    if op == OP_LD_V:
        return f"LD V{ins.x:X}, [I]"
    return f".dw {ins.word:#06x}"

# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

class Memory:
    """Flat 4 KiB byte store.  Addresses are masked by the caller."""

    def __init__(self, size: int = MEM_SIZE):
        self.size = size
        self.data = bytearray(size)

    def reset(self):
        self.data[:] = bytes(self.size)

    def read(self, addr: int) -> int:
        return self.data[addr]

    def write(self, addr: int, val: int):
        self.data[addr] = val & 0xFF

    def read_word(self, addr: int) -> int:
        """Big-endian 16-bit word at addr, addr+1."""
        hi = self.data[addr & ADDR_MASK]
        lo = self.data[(addr + 1) & ADDR_MASK]
        return (hi << 8) | lo

    def load_font(self):
        self.data[FONT_BASE:FONT_BASE + len(FONT)] = FONT

    def load_program(self, data: bytes | bytearray):
        if len(data) > self.size - PROGRAM_BASE:
            raise LoadError(f"Program of {len(data)} bytes exceeds "
                            f"{self.size - PROGRAM_BASE} bytes available")
        self.data[PROGRAM_BASE:PROGRAM_BASE + len(data)] = data

    def dump(self, start: int, count: int) -> bytes:
        return bytes(self.data[(start + i) & ADDR_MASK] for i in range(count))

# ---------------------------------------------------------------------------
#  Register file
# ---------------------------------------------------------------------------

class RegisterFile:
    """V0..VF, I, PC and the call stack.

    VF is plain register 15; instructions that define a flag overwrite it.
    """

    def __init__(self):
        self.v: list[int] = [0] * NUM_REGS
        self.i: int = 0
        self.pc: int = PROGRAM_BASE
        self.stack: list[int] = [0] * STACK_DEPTH
        self.sp: int = 0

    def reset(self):
        self.v = [0] * NUM_REGS
        self.i = 0
        self.pc = PROGRAM_BASE
        self.stack = [0] * STACK_DEPTH
        self.sp = 0

    @property
    def vf(self) -> int:
        return self.v[FLAG_REG]

    @vf.setter
    def vf(self, value: int):
        self.v[FLAG_REG] = value & 0xFF

    def push(self, addr: int):
        if self.sp >= STACK_DEPTH:
            raise StackOverflowError(self.pc, f"Stack overflow @ {self.pc:#05x}")
        self.stack[self.sp] = addr & 0xFFFF
        self.sp += 1

    def pop(self) -> int:
        if self.sp <= 0:
            raise StackUnderflowError(self.pc, f"Stack underflow @ {self.pc:#05x}")
        self.sp -= 1
        return self.stack[self.sp]

    def dump(self) -> str:
        lines = []
        for row in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(f"V{r:X} = {self.v[r]:#04x}"
                                          for r in range(row, row + 4)))
        lines.append(f"  I  = {self.i:#06x}  PC = {self.pc:#05x}  SP = {self.sp}")
        frames = ", ".join(f"{a:#05x}" for a in self.stack[:self.sp])
        lines.append(f"  Stack = [{frames}]")
        return "\n".join(lines)

# ---------------------------------------------------------------------------
#  Virtual machine
# ---------------------------------------------------------------------------

class Chip8:
    """CHIP-8 interpreter: decode/execute over Memory and RegisterFile."""

    def __init__(self, quirks: Optional[Quirks] = None):
        self.quirks = quirks if quirks is not None else Quirks()
        self.mem = Memory()
        self.regs = RegisterFile()
        self.timers = TimerUnit()
        self.fb = Framebuffer()
        self.keypad = Keypad()

        self.halted: bool = False
        self.error: Optional[FatalError] = None
        self.cycle_count: int = 0

        # Called with the FatalError when the machine halts
        self.on_halt: Optional[callable] = None

        self.init()

    # -- Lifecycle --

    def init(self):
        """Reset to power-on state and reload the font."""
        self.mem.reset()
        self.mem.load_font()
        self.regs.reset()
        self.timers.reset()
        self.fb.reset()
        self.keypad.reset()
        self.halted = False
        self.error = None
        self.cycle_count = 0

    def load(self, rom: bytes | bytearray):
        """Reset, then copy *rom* to 0x200.  Raises LoadError if too large;
        the machine is left in the freshly reset state."""
        self.init()
        self.mem.load_program(rom)

    # -- Boundary operations --

    def tick_timers(self):
        self.timers.tick()

    def get_framebuffer_snapshot(self) -> bytes:
        return self.fb.snapshot()

    def is_dirty(self) -> bool:
        return self.fb.dirty

    def clear_dirty(self):
        self.fb.clear_dirty()

    def set_key(self, index: int, pressed: bool):
        self.keypad.set_key(index, pressed)

    # -- Convenience accessors --

    @property
    def pc(self) -> int:
        return self.regs.pc

    @pc.setter
    def pc(self, value: int):
        self.regs.pc = value & 0xFFFF

    @property
    def v(self) -> list[int]:
        return self.regs.v

    @property
    def i(self) -> int:
        return self.regs.i

    @i.setter
    def i(self, value: int):
        self.regs.i = value & 0xFFFF

    # -- Fetch --

    def fetch(self) -> int:
        return self.mem.read_word(self.regs.pc)

    # =====================================================================
    #  CYCLE: one fetch/decode/execute step
    # =====================================================================

    def cycle(self) -> CycleResult:
        """Execute one instruction.

        A fatal error is detected before anything is mutated and comes
        back in the result; the machine then stays halted and further
        calls raise HaltError until the next init()/load().
        """
        if self.halted:
            raise HaltError(f"VM is halted: {self.error}")

        self.regs.pc &= ADDR_MASK
        ins = decode(self.fetch())
        try:
            self._execute(ins)
        except FatalError as e:
            self._halt(e)
            return CycleResult(ins, e)
        self.cycle_count += 1
        return CycleResult(ins)

    def _halt(self, err: FatalError):
        self.halted = True
        self.error = err
        if self.on_halt:
            self.on_halt(err)

    def _execute(self, ins: Instruction):
        r = self.regs
        v = r.v
        op = ins.op

        if op == OP_CLS:
            self.fb.clear()
            r.pc += 2
        elif op == OP_RET:
            r.pc = r.pop()
            if self.quirks.return_advances_pc:
                r.pc += 2
        elif op == OP_JP:
            r.pc = ins.nnn
        elif op == OP_CALL:
            r.push(r.pc + 2)
            r.pc = ins.nnn
        elif op == OP_SE:
            r.pc += 4 if self._skip_operand(ins) == ins.nn else 2
        elif op == OP_SNE:
            r.pc += 4 if self._skip_operand(ins) != ins.nn else 2
        elif op == OP_LD:
            v[ins.x] = ins.nn
            r.pc += 2
        elif op == OP_ADD:
            v[ins.x] = (v[ins.x] + ins.nn) & 0xFF
            r.pc += 2
        elif op == OP_LD_I:
            r.i = ins.nnn
            r.pc += 2
        elif op == OP_DRW:
            self._exec_draw(ins)
            r.pc += 2
        elif op == OP_ADD_I:
            total = r.i + v[ins.x]
            r.i = total & 0xFFFF
            r.vf = 1 if total > ADDR_MASK else 0
            r.pc += 2
        elif op == OP_LD_F:
            r.i = GLYPH_SIZE * v[ins.x]
            r.pc += 2
        elif op == OP_LD_B:
            val = v[ins.x]
            self.mem.write(r.i & ADDR_MASK, val // 100)
            self.mem.write((r.i + 1) & ADDR_MASK, (val // 10) % 10)
            self.mem.write((r.i + 2) & ADDR_MASK, val % 10)
            r.pc += 2
        elif op == OP_LD_V:
            for k in range(ins.x + 1):
                v[k] = self.mem.read((r.i + k) & ADDR_MASK)
            if self.quirks.load_increments_index:
                r.i = (r.i + ins.x + 1) & 0xFFFF
            r.pc += 2
        else:
            raise UnknownOpcodeError(ins.word, r.pc)

    def _skip_operand(self, ins: Instruction) -> int:
        if self.quirks.skip_compare_index:
            return ins.x
        return self.regs.v[ins.x]

    def _exec_draw(self, ins: Instruction):
        r = self.regs
        x = r.v[ins.x]
        y = r.v[ins.y]
        rows = [self.mem.read((r.i + k) & ADDR_MASK) for k in range(ins.n)]
        collision = self.fb.blit_sprite(x, y, rows, wrap=self.quirks.sprite_wrap)
        r.vf = 1 if collision else 0

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = [self.regs.dump()]
        lines.append(f"  DT = {self.timers.delay}  ST = {self.timers.sound}  "
                     f"Draw = {int(self.fb.dirty)}")
        return "\n".join(lines)
