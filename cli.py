#!/usr/bin/env python3
"""
CHIP-8 Monitor / CLI
=====================
Command-line front end for the CHIP-8 virtual machine.

Provides:
  - ROM loading from a file (or assembling a .asm source first)
  - Run / step / breakpoint execution in an interactive monitor
  - Register, memory and screen inspection / modification
  - Disassembly of the implemented opcode subset
  - A pygame window (--display) or headless frame runs (--frames)

Usage:
  python cli.py ROM [--display] [--scale N] [--cycles N] [--frames N]
                    [--config FILE] [--quirk NAME ...] [--trace]
  python cli.py --assemble SRC.asm OUT.ch8 [--listing]
"""

from __future__ import annotations
import argparse
import cmd
import shlex
import sys
from dataclasses import fields

from chip8 import (
    PROGRAM_BASE, ADDR_MASK, Chip8Error, HaltError,
    LoadError, decode, format_instruction,
)
from asm import assemble, AsmError
from config import MachineConfig, Quirks
from system import Chip8System

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def disasm_one(mem: bytearray | bytes, addr: int) -> tuple[str, int]:
    """Disassemble the instruction at `addr`.  Returns (text, byte_count)."""
    size = len(mem)
    word = (mem[addr % size] << 8) | mem[(addr + 1) % size]
    return format_instruction(decode(word)), 2


def disasm_range(mem: bytearray | bytes, start: int, count: int) -> list[str]:
    lines = []
    addr = start
    for _ in range(count):
        text, size = disasm_one(mem, addr)
        raw = f"{mem[addr % len(mem)]:02x} {mem[(addr + 1) % len(mem)]:02x}"
        lines.append(f"{addr:#05x}: {raw}  {text}")
        addr += size
    return lines


# ---------------------------------------------------------------------------
#  Interactive monitor
# ---------------------------------------------------------------------------

class Chip8CLI(cmd.Cmd):
    """Interactive monitor for the CHIP-8 system."""

    intro = (
        "\n"
        "╔══════════════════════════════════════════════════════════╗\n"
        "║             CHIP-8 System Monitor  v1.0                  ║\n"
        "║   Type 'help' for commands.  'quit' to exit.             ║\n"
        "╚══════════════════════════════════════════════════════════╝\n"
    )
    prompt = "C8> "

    def __init__(self, system: Chip8System):
        super().__init__()
        self.sys = system
        self.breakpoints: set[int] = set()

    @property
    def vm(self):
        return self.sys.vm

    # -- Parsing helpers --

    def _parse_addr(self, s: str) -> int:
        """Parse an address (hex with optional 0x prefix, 'pc' or 'i')."""
        s = s.strip().lower()
        if s == "pc":
            return self.vm.pc
        if s == "i":
            return self.vm.i
        return int(s, 0)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def onecmd(self, line):
        """Run one command; a malformed number prints the command's usage."""
        try:
            return super().onecmd(line)
        except ValueError as e:
            cmd_name = self.parseline(line)[0]
            handler = getattr(self, f"do_{cmd_name}", None)
            usage = (handler.__doc__ or "").strip().splitlines()
            print(f"Bad argument: {e}")
            if usage:
                print(f"  {usage[0]}")

    # ================================================================
    #  Commands
    # ================================================================

    # -- Loading --

    def do_load(self, arg):
        """Load a ROM file: load <file>
        Files ending in .asm are assembled first."""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: load <file>")
            return
        try:
            load_program(self.sys, parts[0])
        except (OSError, LoadError, AsmError) as e:
            print(f"Error: {e}")

    def do_reset(self, arg):
        """Reset the machine, keeping the loaded ROM."""
        self.sys.reset()
        print("System reset.")

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            addr = self.vm.pc & ADDR_MASK
            try:
                result = self.sys.step()
            except HaltError:
                print("VM is halted.  Use 'reset' or 'load'.")
                break
            print(f"  {addr:#05x}: {result.ins}")
            if not result.ok:
                print(f"Fatal: {result.error}")
                break

    def do_frame(self, arg):
        """Run N frames (cycles + one timer tick each): frame [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            if self.sys.halted:
                print("VM is halted.")
                break
            self.sys.run_frame()
            if self.sys.halted:
                print(f"Fatal: {self.vm.error}")
                break
        print(f"  Frame {self.sys.frame_count}, PC = {self.vm.pc:#05x}")

    def do_run(self, arg):
        """Run until halt/breakpoint: run [max_instructions]"""
        limit = self._parse_int(arg) if arg.strip() else 1_000_000
        done = 0
        while done < limit:
            if self.sys.halted:
                print(f"\nVM halted after {done} instructions: {self.vm.error}")
                return
            if done and (self.vm.pc & ADDR_MASK) in self.breakpoints:
                print(f"\nBreakpoint hit at {self.vm.pc:#05x}")
                return
            result = self.sys.step()
            if not result.ok:
                print(f"\nFatal after {done} instructions: {result.error}")
                return
            done += 1
            if done % self.sys.config.cycles_per_frame == 0:
                self.vm.tick_timers()
        print(f"\nStopped after {done} instructions.")

    def do_tick(self, arg):
        """Tick the timers N times: tick [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        for _ in range(count):
            self.vm.tick_timers()
        print(f"  DT = {self.vm.timers.delay}  ST = {self.vm.timers.sound}")

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>"""
        if not arg.strip():
            if self.breakpoints:
                print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    print(f"  {a:#05x}")
            else:
                print("No breakpoints set.")
            return
        addr = self._parse_addr(arg) & ADDR_MASK
        self.breakpoints.add(addr)
        print(f"Breakpoint set at {addr:#05x}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            print("All breakpoints cleared.")
            return
        addr = self._parse_addr(arg) & ADDR_MASK
        self.breakpoints.discard(addr)
        print(f"Breakpoint at {addr:#05x} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers, timers and stack."""
        print(self.vm.dump_regs())
        print(f"  Cycles: {self.vm.cycle_count}")

    def do_setreg(self, arg):
        """Set register: setreg <V0-VF|i|pc|dt|st> <value>"""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setreg <reg> <value>")
            return
        reg_s = parts[0].lower()
        val = self._parse_int(parts[1])
        if reg_s == "pc":
            self.vm.pc = val
        elif reg_s == "i":
            self.vm.i = val
        elif reg_s == "dt":
            self.vm.timers.delay = val & 0xFF
        elif reg_s == "st":
            self.vm.timers.sound = val & 0xFF
        elif len(reg_s) == 2 and reg_s[0] == "v" and reg_s[1] in "0123456789abcdef":
            self.vm.v[int(reg_s[1], 16)] = val & 0xFF
        else:
            print("Unknown register.")
            return
        print(f"  {reg_s.upper()} = {val:#x}")

    def do_dump(self, arg):
        """Hex dump memory: dump <address> [count]
        Count defaults to 64 bytes."""
        parts = shlex.split(arg)
        if not parts:
            print("Usage: dump <address> [count]")
            return
        addr = self._parse_addr(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 64
        data = self.vm.mem.dump(addr, count)
        for off in range(0, count, 16):
            chunk = data[off:off + 16]
            hex_bytes = [f"{b:02x}" for b in chunk]
            hex_str = ' '.join(hex_bytes[:8]) + '  ' + ' '.join(hex_bytes[8:])
            print(f"  {(addr + off) & ADDR_MASK:#05x}: {hex_str}")

    def do_setmem(self, arg):
        """Set memory bytes: setmem <address> <byte> [byte] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            print("Usage: setmem <addr> <byte...>")
            return
        addr = self._parse_addr(parts[0])
        for k, tok in enumerate(parts[1:]):
            self.vm.mem.write((addr + k) & ADDR_MASK, self._parse_int(tok))
        print(f"  Wrote {len(parts) - 1} bytes at {addr & ADDR_MASK:#05x}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current PC, 16 instructions."""
        parts = shlex.split(arg)
        addr = self._parse_addr(parts[0]) if parts else self.vm.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16
        pc = self.vm.pc & ADDR_MASK
        for k, line in enumerate(disasm_range(self.vm.mem.data, addr, count)):
            marker = ">>>" if ((addr + 2 * k) & ADDR_MASK) == pc else "   "
            print(f"  {marker} {line}")

    def do_screen(self, arg):
        """Print the framebuffer as text."""
        print(self.vm.fb.render_text())

    def do_key(self, arg):
        """Press or release a key: key <0-F> [down|up]"""
        parts = shlex.split(arg)
        if not parts:
            pressed = [f"{k:X}" for k, d in enumerate(self.vm.keypad.snapshot()) if d]
            print(f"  Pressed: {' '.join(pressed) or 'none'}")
            return
        try:
            idx = int(parts[0], 16)
            down = len(parts) < 2 or parts[1].lower() in ("down", "1", "on")
            self.sys.set_key(idx, down)
        except ValueError as e:
            print(f"Error: {e}")
            return
        print(f"  Key {idx:X} {'down' if down else 'up'}")

    def do_status(self, arg):
        """Show full system status."""
        print(self.sys.dump_state())

    def do_quirks(self, arg):
        """Show or toggle quirks: quirks [name on|off]"""
        q = self.sys.config.quirks
        parts = shlex.split(arg)
        if len(parts) == 2:
            if parts[0] not in {f.name for f in fields(q)}:
                print(f"Unknown quirk: {parts[0]}")
                return
            setattr(q, parts[0], parts[1].lower() in ("on", "1", "true"))
        for name, val in q.to_dict().items():
            print(f"  {name:<24s} {'on' if val else 'off'}")

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def load_program(sys_emu: Chip8System, path: str):
    """Load a ROM image, assembling it first if it is a .asm source."""
    if path.endswith(".asm"):
        with open(path, "r") as f:
            source = f.read()
        sys_emu.load_rom(assemble(source, PROGRAM_BASE))
        sys_emu.rom_path = path
    else:
        sys_emu.load_rom_file(path)
    print(f"Loaded {sys_emu.rom_size} bytes from '{path}' at {PROGRAM_BASE:#x}")


def build_config(args: argparse.Namespace) -> MachineConfig:
    config = MachineConfig.load(args.config) if args.config else MachineConfig()
    if args.cycles is not None:
        config.cycles_per_frame = max(1, args.cycles)
    if args.scale is not None:
        config.scale = max(1, args.scale)
    for name in args.quirk:
        setattr(config.quirks, name, True)
    for name in args.no_quirk:
        setattr(config.quirks, name, False)
    return config


def build_parser() -> argparse.ArgumentParser:
    quirk_names = [f.name for f in fields(Quirks)]
    parser = argparse.ArgumentParser(
        description="CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python cli.py pong.ch8 --display\n"
               "  python cli.py demo.asm --frames 120 --screen\n"
               "  python cli.py pong.ch8               # debug monitor\n"
               "  python cli.py --assemble demo.asm demo.ch8 -l\n"
    )
    parser.add_argument("rom", nargs="?", default=None,
                        help="ROM image (.ch8) or assembly source (.asm)")
    parser.add_argument("--display", action="store_true",
                        help="Open a pygame window and run the ROM")
    parser.add_argument("--scale", type=int, default=None, metavar="N",
                        help="Window pixels per CHIP-8 pixel (default: 10)")
    parser.add_argument("--cycles", type=int, default=None, metavar="N",
                        help="Instructions per 60 Hz frame (default: 10)")
    parser.add_argument("--no-sound", action="store_true",
                        help="Disable the sound-timer beep")
    parser.add_argument("--frames", type=int, default=None, metavar="N",
                        help="Run N frames headless, then exit")
    parser.add_argument("--screen", action="store_true",
                        help="Print the framebuffer after --frames")
    parser.add_argument("--trace", action="store_true",
                        help="Print every executed instruction")
    parser.add_argument("--config", type=str, default=None, metavar="FILE",
                        help="Load machine configuration from JSON")
    parser.add_argument("--save-config", type=str, default=None, metavar="FILE",
                        help="Write the effective configuration to JSON and exit")
    parser.add_argument("--quirk", action="append", default=[],
                        choices=quirk_names, help="Enable a quirk (can repeat)")
    parser.add_argument("--no-quirk", action="append", default=[],
                        choices=quirk_names, help="Disable a quirk (can repeat)")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC.asm to OUT.ch8 and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        src_path, out_path = args.assemble
        with open(src_path, "r") as f:
            source = f.read()
        try:
            code = assemble(source, PROGRAM_BASE, listing=args.listing)
        except AsmError as e:
            print(f"Assembly error: {e}", file=sys.stderr)
            return 1
        with open(out_path, "wb") as f:
            f.write(code)
        print(f"Assembled {src_path} → {out_path} ({len(code)} bytes)")
        return 0

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    if args.save_config:
        config.save(args.save_config)
        print(f"Configuration written to {args.save_config}")
        return 0

    sys_emu = Chip8System(config)
    if args.trace:
        sys_emu.on_trace = lambda pc, ins: print(f"  {pc:#05x}: {ins}")

    if args.rom:
        try:
            load_program(sys_emu, args.rom)
        except (OSError, LoadError, AsmError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    # ---- Window mode: the display thread drives the frame loop --------
    if args.display:
        if not args.rom:
            print("--display needs a ROM", file=sys.stderr)
            return 1
        try:
            import pygame  # noqa: F401
            from display import Chip8Display
        except ImportError as e:
            print(f"[display] pygame not available: {e}", file=sys.stderr)
            print("[display] Install with: pip install pygame", file=sys.stderr)
            return 1
        display = Chip8Display(sys_emu, sound=not args.no_sound)
        display.start()
        print(f"[display] window opened (scale={display.scale}x)")
        try:
            display.wait()
        except KeyboardInterrupt:
            display.stop()
        return 1 if sys_emu.halted else 0

    # ---- Headless batch mode -------------------------------------------
    if args.frames is not None:
        done = sys_emu.run(args.frames)
        if args.screen:
            print(sys_emu.vm.fb.render_text())
        if sys_emu.halted:
            print(f"[chip8] halted after {done} frames: {sys_emu.vm.error}",
                  file=sys.stderr)
            return 1
        print(f"[chip8] ran {done} frames, {sys_emu.vm.cycle_count} instructions")
        return 0

    # ---- Debug monitor ---------------------------------------------------
    cli = Chip8CLI(sys_emu)
    try:
        cli.cmdloop()
    except KeyboardInterrupt:
        print("\nInterrupted. Goodbye.")
    except Chip8Error as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
