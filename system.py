"""
CHIP-8 System Driver
=====================
Wires the Chip8 interpreter (chip8.py) to a fixed-rate frame loop:

  - each frame runs ``cycles_per_frame`` instructions,
  - then ticks the delay/sound timers exactly once,
  - then relays a framebuffer snapshot if the draw flag is set.

The CPU rate and the 60 Hz timer rate are decoupled: however many
instructions run in a frame, the timers advance by one.
"""

from __future__ import annotations

import os
import time
from typing import Optional

from chip8 import PROGRAM_BASE, Chip8, CycleResult, FatalError
from config import MachineConfig


class Chip8System:
    """Frame-driven host for a single Chip8 instance."""

    def __init__(self, config: Optional[MachineConfig] = None):
        self.config = config if config is not None else MachineConfig()
        self.vm = Chip8(quirks=self.config.quirks)
        self.vm.on_halt = self._vm_halted

        self.frame_count: int = 0
        self.rom_path: Optional[str] = None
        self.rom_size: int = 0

        # Callbacks
        self.on_frame: Optional[callable] = None   # called with snapshot bytes
        self.on_halt: Optional[callable] = None    # called with FatalError
        self.on_sound: Optional[callable] = None   # called with bool on change
        self.on_trace: Optional[callable] = None   # called with (pc, Instruction)

        self._sound_on = False

    # -----------------------------------------------------------------
    #  Loading
    # -----------------------------------------------------------------

    def load_rom(self, data: bytes | bytearray):
        """Reset the machine and load a program image at 0x200."""
        self.rom_size = 0
        self.frame_count = 0
        self.vm.load(data)
        self.rom_size = len(data)
        self._sound_on = False

    def load_rom_file(self, path: str):
        with open(path, "rb") as f:
            data = f.read()
        self.load_rom(data)
        self.rom_path = os.path.abspath(path)

    def reset(self):
        """Reset the machine, keeping the currently loaded program."""
        image = bytes(self.vm.mem.data[PROGRAM_BASE:PROGRAM_BASE + self.rom_size])
        self.load_rom(image)

    # -----------------------------------------------------------------
    #  Execution
    # -----------------------------------------------------------------

    def step(self) -> CycleResult:
        """Execute a single instruction (no timer tick)."""
        pc = self.vm.pc & 0xFFF
        result = self.vm.cycle()
        if self.on_trace:
            self.on_trace(pc, result.ins)
        return result

    def run_frame(self) -> bool:
        """Run one 60 Hz frame.  Returns True if a new frame was relayed.

        A fatal VM error stops the frame early; the timers still tick so
        the frame is accounted for.  The error is left in ``vm.error``.
        """
        for _ in range(self.config.cycles_per_frame):
            if not self.step().ok:
                break
        self.vm.tick_timers()
        self.frame_count += 1
        self._update_sound()
        return self._relay_frame()

    def run(self, frames: int, realtime: bool = False) -> int:
        """Run up to *frames* frames.  Returns frames completed.

        Stops when the VM halts on a fatal error; the halting frame is
        not counted.
        """
        period = 1.0 / self.config.frame_rate
        done = 0
        next_deadline = time.perf_counter()
        for _ in range(frames):
            if self.halted:
                break
            self.run_frame()
            if self.halted:
                break
            done += 1
            if realtime:
                next_deadline += period
                delay = next_deadline - time.perf_counter()
                if delay > 0:
                    time.sleep(delay)
                else:
                    next_deadline = time.perf_counter()
        return done

    def _relay_frame(self) -> bool:
        if not self.vm.is_dirty():
            return False
        snap = self.vm.get_framebuffer_snapshot()
        self.vm.clear_dirty()
        if self.on_frame:
            self.on_frame(snap)
        return True

    def _update_sound(self):
        active = self.vm.timers.sound_active
        if active != self._sound_on:
            self._sound_on = active
            if self.on_sound:
                self.on_sound(active)

    def _vm_halted(self, err: FatalError):
        if self.on_halt:
            self.on_halt(err)

    # -----------------------------------------------------------------
    #  State queries
    # -----------------------------------------------------------------

    @property
    def halted(self) -> bool:
        return self.vm.halted

    @property
    def sound_on(self) -> bool:
        return self._sound_on

    def set_key(self, index: int, pressed: bool):
        self.vm.set_key(index, pressed)

    def dump_state(self) -> str:
        """Full VM + device state dump."""
        vm = self.vm
        lines = ["=== Registers ===", vm.dump_regs()]
        lines.append(f"  Cycles: {vm.cycle_count}  Frames: {self.frame_count}")
        status = f"halted ({vm.error})" if vm.halted else "running"
        lines.append(f"  Status: {status}")
        lines.append("")
        lines.append("=== Devices ===")
        lines.append(f"  Timers: delay={vm.timers.delay} sound={vm.timers.sound} "
                     f"ticks={vm.timers.tick_count}")
        pressed = [f"{k:X}" for k, down in enumerate(vm.keypad.snapshot()) if down]
        lines.append(f"  Keypad: pressed=[{' '.join(pressed)}]")
        lit = sum(vm.fb.pixels)
        lines.append(f"  Framebuffer: {vm.fb.width}x{vm.fb.height} lit={lit} "
                     f"dirty={'Y' if vm.fb.dirty else 'N'}")
        lines.append(f"  ROM: {self.rom_path or 'N/A'} ({self.rom_size} bytes)")
        return "\n".join(lines)
