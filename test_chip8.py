#!/usr/bin/env python3
"""
CHIP-8 Interpreter Test Suite
==============================
Covers memory/loading, every implemented opcode, the fatal error paths
and the quirk switches.

Where CHIP-8 interpreters disagree, the tests pin the chosen behaviour:

  - SE/SNE (3XNN/4XNN) compare the value of VX; the ``skip_compare_index``
    quirk compares the X nibble itself.
  - LD B (FX33) stores real decimal digits.
  - LD Vx, [I] (FX65) loads V0..VX inclusive and advances I by X+1.
  - DRW clips at the right/bottom edges; ``sprite_wrap`` wraps instead.
  - RET resumes at the pushed return address; ``return_advances_pc``
    adds 2 more.
  - Stack overflow and underflow halt the machine.
"""

import unittest

from chip8 import (
    Chip8, Memory, RegisterFile, decode, format_instruction,
    FONT, PROGRAM_BASE, MAX_ROM_SIZE, FLAG_REG,
    OP_CLS, OP_RET, OP_JP, OP_CALL, OP_SE, OP_SNE, OP_LD, OP_ADD, OP_LD_I,
    OP_DRW, OP_ADD_I, OP_LD_F, OP_LD_B, OP_LD_V, OP_UNKNOWN,
    Chip8Error, FatalError, HaltError, LoadError, UnknownOpcodeError,
    StackOverflowError, StackUnderflowError,
)
from config import Quirks


def rom(*words: int) -> bytes:
    """Pack 16-bit instruction words big-endian."""
    out = bytearray()
    for w in words:
        out += bytes([(w >> 8) & 0xFF, w & 0xFF])
    return bytes(out)


def make_vm(*words: int, quirks: Quirks = None) -> Chip8:
    vm = Chip8(quirks=quirks)
    vm.load(rom(*words))
    return vm


def run(vm: Chip8, n: int):
    for _ in range(n):
        vm.cycle()


# ---------------------------------------------------------------------------
#  Memory and lifecycle
# ---------------------------------------------------------------------------

class TestMemory(unittest.TestCase):
    def test_font_loaded_at_zero(self):
        vm = Chip8()
        self.assertEqual(bytes(vm.mem.data[0:80]), FONT)
        self.assertEqual(len(FONT), 80)

    def test_program_copied_at_0x200(self):
        vm = make_vm(0x6005, 0x7003)
        self.assertEqual(bytes(vm.mem.data[0x200:0x204]), b"\x60\x05\x70\x03")
        self.assertEqual(vm.mem.read(0x204), 0)
        self.assertEqual(bytes(vm.mem.data[0x50:0x200]), bytes(0x1B0))

    def test_read_word_big_endian(self):
        mem = Memory()
        mem.write(0x300, 0xAB)
        mem.write(0x301, 0xCD)
        self.assertEqual(mem.read_word(0x300), 0xABCD)

    def test_read_word_wraps_at_top(self):
        mem = Memory()
        mem.write(0xFFF, 0x12)
        mem.write(0x000, 0x34)
        self.assertEqual(mem.read_word(0xFFF), 0x1234)

    def test_write_masks_to_byte(self):
        mem = Memory()
        mem.write(0x200, 0x1FF)
        self.assertEqual(mem.read(0x200), 0xFF)

    def test_largest_rom_fits(self):
        vm = Chip8()
        vm.load(bytes([0xAA]) * MAX_ROM_SIZE)
        self.assertEqual(vm.mem.read(0xFFF), 0xAA)

    def test_oversized_rom_rejected(self):
        vm = make_vm(0x6005)
        vm.v[3] = 9
        with self.assertRaises(LoadError):
            vm.load(bytes(MAX_ROM_SIZE + 1))
        # Left in the freshly reset state
        self.assertEqual(vm.pc, PROGRAM_BASE)
        self.assertEqual(vm.v, [0] * 16)
        self.assertEqual(bytes(vm.mem.data[0:80]), FONT)
        self.assertEqual(vm.mem.read(0x200), 0)

    def test_load_error_is_chip8_error(self):
        self.assertTrue(issubclass(LoadError, Chip8Error))
        self.assertFalse(issubclass(LoadError, FatalError))


class TestLifecycle(unittest.TestCase):
    def test_power_on_state(self):
        vm = Chip8()
        self.assertEqual(vm.pc, 0x200)
        self.assertEqual(vm.i, 0)
        self.assertEqual(vm.regs.sp, 0)
        self.assertEqual(vm.regs.stack, [0] * 16)
        self.assertEqual(vm.timers.delay, 0)
        self.assertEqual(vm.timers.sound, 0)
        self.assertFalse(vm.is_dirty())
        self.assertFalse(vm.halted)

    def test_init_is_idempotent(self):
        vm = make_vm(0x6005, 0x00E0)
        run(vm, 2)
        vm.timers.delay = 7
        vm.set_key(4, True)
        vm.init()
        first = (bytes(vm.mem.data), list(vm.v), vm.pc, vm.i, vm.is_dirty())
        vm.init()
        second = (bytes(vm.mem.data), list(vm.v), vm.pc, vm.i, vm.is_dirty())
        self.assertEqual(first, second)
        self.assertEqual(vm.timers.delay, 0)
        self.assertFalse(vm.keypad.is_pressed(4))
        self.assertEqual(vm.get_framebuffer_snapshot(), bytes(64 * 32))

    def test_init_recovers_from_halt(self):
        vm = make_vm(0x5123)
        self.assertFalse(vm.cycle().ok)
        vm.load(rom(0x6001))
        vm.cycle()
        self.assertEqual(vm.v[0], 1)

    def test_end_to_end_set_then_add(self):
        vm = make_vm(0x6005, 0x7003)
        run(vm, 2)
        self.assertEqual(vm.v[0], 8)
        self.assertEqual(vm.pc, 0x204)

    def test_cycle_returns_instruction(self):
        vm = make_vm(0x6A42)
        result = vm.cycle()
        self.assertTrue(result.ok)
        self.assertIsNone(result.error)
        ins = result.ins
        self.assertEqual(ins.op, OP_LD)
        self.assertEqual((ins.x, ins.nn), (0xA, 0x42))
        self.assertEqual(vm.cycle_count, 1)

    def test_pc_masked_before_fetch(self):
        vm = make_vm(0x6007)
        vm.pc = 0x1200
        vm.cycle()
        self.assertEqual(vm.v[0], 7)
        self.assertEqual(vm.pc, 0x202)


# ---------------------------------------------------------------------------
#  Registers
# ---------------------------------------------------------------------------

class TestRegisterFile(unittest.TestCase):
    def test_vf_is_register_15(self):
        regs = RegisterFile()
        regs.v[FLAG_REG] = 0x33
        self.assertEqual(regs.vf, 0x33)
        regs.vf = 0x101
        self.assertEqual(regs.v[15], 0x01)

    def test_push_pop(self):
        regs = RegisterFile()
        regs.push(0x202)
        regs.push(0x304)
        self.assertEqual(regs.sp, 2)
        self.assertEqual(regs.pop(), 0x304)
        self.assertEqual(regs.pop(), 0x202)
        self.assertEqual(regs.sp, 0)

    def test_overflow_leaves_stack_untouched(self):
        regs = RegisterFile()
        for k in range(16):
            regs.push(0x200 + 2 * k)
        with self.assertRaises(StackOverflowError):
            regs.push(0x400)
        self.assertEqual(regs.sp, 16)
        self.assertEqual(regs.stack[15], 0x21E)

    def test_underflow(self):
        regs = RegisterFile()
        with self.assertRaises(StackUnderflowError):
            regs.pop()
        self.assertEqual(regs.sp, 0)

    def test_dump_lists_registers(self):
        regs = RegisterFile()
        regs.v[0xA] = 0x5C
        text = regs.dump()
        self.assertIn("VA = 0x5c", text)
        self.assertIn("PC = 0x200", text)


# ---------------------------------------------------------------------------
#  Decoder
# ---------------------------------------------------------------------------

class TestDecode(unittest.TestCase):
    def test_known_encodings(self):
        cases = {
            0x00E0: OP_CLS, 0x00EE: OP_RET, 0x1ABC: OP_JP, 0x2ABC: OP_CALL,
            0x3A12: OP_SE, 0x4A12: OP_SNE, 0x6A12: OP_LD, 0x7A12: OP_ADD,
            0xA123: OP_LD_I, 0xD125: OP_DRW, 0xF31E: OP_ADD_I,
            0xF329: OP_LD_F, 0xF333: OP_LD_B, 0xF365: OP_LD_V,
        }
        for word, op in cases.items():
            self.assertEqual(decode(word).op, op, f"{word:#06x}")

    def test_unknown_encodings(self):
        for word in (0x0000, 0x0123, 0x00E1, 0x5120, 0x5123, 0x8124,
                     0x9120, 0xB123, 0xC1FF, 0xE19E, 0xF107, 0xF155, 0xFFFF):
            self.assertEqual(decode(word).op, OP_UNKNOWN, f"{word:#06x}")

    def test_operand_fields(self):
        ins = decode(0xD3A7)
        self.assertEqual((ins.x, ins.y, ins.n), (3, 0xA, 7))
        self.assertEqual(decode(0x1FED).nnn, 0xFED)
        self.assertEqual(decode(0x7C80).nn, 0x80)

    def test_format(self):
        self.assertEqual(format_instruction(decode(0x00E0)), "CLS")
        self.assertEqual(format_instruction(decode(0x1200)), "JP 0x200")
        self.assertEqual(format_instruction(decode(0x6A0F)), "LD VA, 0x0f")
        self.assertEqual(format_instruction(decode(0xD015)), "DRW V0, V1, 5")
        self.assertEqual(format_instruction(decode(0xF265)), "LD V2, [I]")
        self.assertEqual(str(decode(0x5123)), ".dw 0x5123")


# ---------------------------------------------------------------------------
#  Instructions
# ---------------------------------------------------------------------------

class TestFlowControl(unittest.TestCase):
    def test_jump_no_increment(self):
        vm = make_vm(0x1200)
        vm.cycle()
        self.assertEqual(vm.pc, 0x200)

    def test_jump_far(self):
        vm = make_vm(0x1ABC)
        vm.cycle()
        self.assertEqual(vm.pc, 0xABC)

    def test_call_pushes_return_address(self):
        vm = make_vm(0x2300)
        vm.cycle()
        self.assertEqual(vm.pc, 0x300)
        self.assertEqual(vm.regs.sp, 1)
        self.assertEqual(vm.regs.stack[0], 0x202)

    def test_call_then_return(self):
        #   0x200 CALL 0x206
        #   0x202 LD V0, 1
        #   0x204 JP 0x204
        #   0x206 RET
        vm = make_vm(0x2206, 0x6001, 0x1204, 0x00EE)
        vm.cycle()
        self.assertEqual(vm.pc, 0x206)
        vm.cycle()
        self.assertEqual(vm.pc, 0x202)
        self.assertEqual(vm.regs.sp, 0)
        vm.cycle()
        self.assertEqual(vm.v[0], 1)

    def test_return_quirk_adds_two(self):
        vm = make_vm(0x2206, 0x6001, 0x1204, 0x00EE,
                     quirks=Quirks(return_advances_pc=True))
        run(vm, 2)
        self.assertEqual(vm.pc, 0x204)
        self.assertEqual(vm.regs.sp, 0)

    def test_nested_calls(self):
        #   0x200 CALL 0x204
        #   0x202 JP 0x202
        #   0x204 CALL 0x208
        #   0x206 RET
        #   0x208 RET
        vm = make_vm(0x2204, 0x1202, 0x2208, 0x00EE, 0x00EE)
        run(vm, 2)
        self.assertEqual(vm.regs.sp, 2)
        self.assertEqual(vm.regs.stack[:2], [0x202, 0x206])
        run(vm, 2)
        self.assertEqual(vm.pc, 0x202)
        self.assertEqual(vm.regs.sp, 0)

    def test_stack_overflow_is_fatal(self):
        vm = make_vm(0x2200)   # calls itself forever
        run(vm, 16)
        self.assertEqual(vm.regs.sp, 16)
        result = vm.cycle()
        self.assertIsInstance(result.error, StackOverflowError)
        self.assertEqual(result.ins.op, OP_CALL)
        self.assertTrue(vm.halted)
        self.assertEqual(vm.regs.sp, 16)
        self.assertEqual(vm.pc, 0x200)
        with self.assertRaises(HaltError):
            vm.cycle()

    def test_stack_underflow_is_fatal(self):
        vm = make_vm(0x00EE)
        self.assertIsInstance(vm.cycle().error, StackUnderflowError)
        self.assertTrue(vm.halted)
        self.assertEqual(vm.pc, 0x200)
        self.assertEqual(vm.regs.sp, 0)


class TestSkips(unittest.TestCase):
    def test_se_value_equal_skips(self):
        vm = make_vm(0x6142, 0x3142)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x206)

    def test_se_value_not_equal(self):
        vm = make_vm(0x6141, 0x3142)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x204)

    def test_sne_value(self):
        vm = make_vm(0x6141, 0x4142)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x206)
        vm = make_vm(0x6142, 0x4142)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x204)

    def test_se_index_quirk(self):
        q = Quirks(skip_compare_index=True)
        # V1 holds 0x42 but the nibble 1 is compared
        vm = make_vm(0x6142, 0x3142, quirks=q)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x204)
        vm = make_vm(0x6142, 0x3101, quirks=q)
        run(vm, 2)
        self.assertEqual(vm.pc, 0x206)

    def test_sne_index_quirk(self):
        q = Quirks(skip_compare_index=True)
        vm = make_vm(0x4505, quirks=q)
        vm.cycle()
        self.assertEqual(vm.pc, 0x202)
        vm = make_vm(0x4506, quirks=q)
        vm.cycle()
        self.assertEqual(vm.pc, 0x204)


class TestRegisterOps(unittest.TestCase):
    def test_set_immediate(self):
        vm = make_vm(0x6EFF)
        vm.cycle()
        self.assertEqual(vm.v[0xE], 0xFF)
        self.assertEqual(vm.pc, 0x202)

    def test_add_wraps(self):
        vm = make_vm(0x60FF, 0x7002)
        run(vm, 2)
        self.assertEqual(vm.v[0], 0x01)

    def test_add_does_not_touch_vf(self):
        vm = make_vm(0x6F07, 0x60FF, 0x7002)
        run(vm, 3)
        self.assertEqual(vm.v[0xF], 0x07)

    def test_repeated_add_is_mod_256(self):
        for initial in (0, 1, 0x7F, 0x80, 0xFE, 0xFF):
            for step in (1, 0x33, 0x80, 0xFF):
                words = [0x6300 | initial] + [0x7300 | step] * 10
                vm = make_vm(*words)
                run(vm, len(words))
                self.assertEqual(vm.v[3], (initial + 10 * step) % 256)
                self.assertLessEqual(vm.v[3], 255)

    def test_vf_writable_directly(self):
        vm = make_vm(0x6F12)
        vm.cycle()
        self.assertEqual(vm.v[15], 0x12)


class TestIndexOps(unittest.TestCase):
    def test_set_index(self):
        vm = make_vm(0xA123)
        vm.cycle()
        self.assertEqual(vm.i, 0x123)

    def test_add_to_index(self):
        vm = make_vm(0xA100, 0x6005, 0xF01E)
        run(vm, 3)
        self.assertEqual(vm.i, 0x105)
        self.assertEqual(vm.v[0xF], 0)

    def test_add_to_index_overflow_flag(self):
        vm = make_vm(0xAFFF, 0x6001, 0xF01E)
        run(vm, 3)
        self.assertEqual(vm.i, 0x1000)   # not masked on write
        self.assertEqual(vm.v[0xF], 1)

    def test_add_to_index_exactly_fff(self):
        vm = make_vm(0xAFFE, 0x6001, 0xF01E)
        run(vm, 3)
        self.assertEqual(vm.i, 0xFFF)
        self.assertEqual(vm.v[0xF], 0)

    def test_add_vf_to_index(self):
        vm = make_vm(0xAFFF, 0x6F02, 0xFF1E)
        run(vm, 3)
        self.assertEqual(vm.i, 0x1001)
        self.assertEqual(vm.v[0xF], 1)

    def test_font_address(self):
        vm = make_vm(0x6000, 0xF029)
        run(vm, 2)
        self.assertEqual(vm.i, 0)
        vm = make_vm(0x610F, 0xF129)
        run(vm, 2)
        self.assertEqual(vm.i, 75)

    def test_font_address_points_at_glyph(self):
        vm = make_vm(0x6107, 0xF129)
        run(vm, 2)
        self.assertEqual(bytes(vm.mem.data[vm.i:vm.i + 5]), FONT[35:40])


class TestMemoryOps(unittest.TestCase):
    def test_bcd(self):
        vm = make_vm(0x60FE, 0xA300, 0xF033)
        run(vm, 3)
        self.assertEqual(bytes(vm.mem.data[0x300:0x303]), bytes([2, 5, 4]))
        self.assertEqual(vm.i, 0x300)

    def test_bcd_small_values(self):
        for value, digits in ((0, [0, 0, 0]), (7, [0, 0, 7]),
                              (40, [0, 4, 0]), (100, [1, 0, 0])):
            vm = make_vm(0x6500 | value, 0xA400, 0xF533)
            run(vm, 3)
            self.assertEqual(list(vm.mem.data[0x400:0x403]), digits)

    def test_bcd_address_masked(self):
        vm = make_vm(0x6080, 0xAFFF, 0xF033)
        run(vm, 3)
        self.assertEqual(vm.mem.read(0xFFF), 1)
        self.assertEqual(vm.mem.read(0x000), 2)
        self.assertEqual(vm.mem.read(0x001), 8)

    def test_load_block_inclusive(self):
        vm = make_vm(0xA300, 0xF265)
        vm.mem.data[0x300:0x304] = bytes([0x11, 0x22, 0x33, 0x44])
        run(vm, 2)
        self.assertEqual(vm.v[:4], [0x11, 0x22, 0x33, 0])
        self.assertEqual(vm.i, 0x303)

    def test_load_block_v0_only(self):
        vm = make_vm(0xA300, 0xF065)
        vm.mem.data[0x300:0x302] = bytes([0x99, 0x88])
        run(vm, 2)
        self.assertEqual(vm.v[0], 0x99)
        self.assertEqual(vm.v[1], 0)
        self.assertEqual(vm.i, 0x301)

    def test_load_block_without_index_increment(self):
        vm = make_vm(0xA300, 0xF265,
                     quirks=Quirks(load_increments_index=False))
        vm.mem.data[0x300:0x303] = bytes([1, 2, 3])
        run(vm, 2)
        self.assertEqual(vm.v[:3], [1, 2, 3])
        self.assertEqual(vm.i, 0x300)


class TestDisplayOps(unittest.TestCase):
    def test_clear(self):
        vm = make_vm(0x00E0)
        vm.fb.pixels[5] = 1
        vm.fb.pixels[2047] = 1
        vm.cycle()
        self.assertEqual(vm.get_framebuffer_snapshot(), bytes(2048))
        self.assertTrue(vm.is_dirty())
        self.assertEqual(vm.pc, 0x202)

    def test_draw_glyph(self):
        # Glyph "0" at (0, 0): F0 90 90 90 F0
        vm = make_vm(0xA000, 0x6000, 0x6100, 0xD015)
        run(vm, 4)
        fb = vm.fb
        self.assertEqual([fb.get_pixel(x, 0) for x in range(8)],
                         [1, 1, 1, 1, 0, 0, 0, 0])
        self.assertEqual([fb.get_pixel(x, 1) for x in range(8)],
                         [1, 0, 0, 1, 0, 0, 0, 0])
        self.assertEqual(sum(fb.pixels), 14)
        self.assertEqual(vm.v[0xF], 0)
        self.assertTrue(vm.is_dirty())

    def test_draw_is_self_inverse(self):
        vm = make_vm(0xA00A, 0x6A0C, 0x6B07, 0xDAB5, 0xDAB5)
        run(vm, 4)
        first = vm.get_framebuffer_snapshot()
        self.assertEqual(vm.v[0xF], 0)
        self.assertGreater(sum(first), 0)
        vm.cycle()
        self.assertEqual(vm.get_framebuffer_snapshot(), bytes(2048))
        self.assertEqual(vm.v[0xF], 1)

    def test_partial_overlap_collision(self):
        # Two single-row sprites: 0xF0 at x=0, then 0x80 at x=3 overlaps one pixel
        vm = make_vm(0xA300, 0x6000, 0x6100, 0xD011,
                     0xA301, 0x6003, 0xD011)
        vm.mem.data[0x300:0x302] = bytes([0xF0, 0x80])
        run(vm, 4)
        self.assertEqual(vm.v[0xF], 0)
        run(vm, 3)
        self.assertEqual(vm.v[0xF], 1)
        self.assertEqual([vm.fb.get_pixel(x, 0) for x in range(4)], [1, 1, 1, 0])

    def test_draw_clips_at_right_edge(self):
        vm = make_vm(0xA300, 0x603E, 0x6100, 0xD011)
        vm.mem.write(0x300, 0xFF)
        run(vm, 4)
        self.assertEqual(vm.fb.get_pixel(62, 0), 1)
        self.assertEqual(vm.fb.get_pixel(63, 0), 1)
        self.assertEqual(sum(vm.fb.pixels), 2)

    def test_draw_clips_at_bottom_edge(self):
        vm = make_vm(0xA000, 0x6000, 0x611E, 0xD015)
        run(vm, 4)
        # Only rows 30 and 31 of the glyph are drawn
        self.assertEqual(sum(vm.fb.pixels), 4 + 2)
        self.assertEqual(sum(vm.fb.pixels[0:64 * 3]), 0)

    def test_draw_wrap_quirk(self):
        vm = make_vm(0xA300, 0x603E, 0x6100, 0xD011,
                     quirks=Quirks(sprite_wrap=True))
        vm.mem.write(0x300, 0xFF)
        run(vm, 4)
        self.assertEqual(sum(vm.fb.pixels), 8)
        self.assertEqual([vm.fb.get_pixel(x, 0) for x in range(6)], [1] * 6)

    def test_draw_origin_wraps(self):
        vm = make_vm(0xA300, 0x6041, 0x6122, 0xD011)   # (65, 34) -> (1, 2)
        vm.mem.write(0x300, 0x80)
        run(vm, 4)
        self.assertEqual(vm.fb.get_pixel(1, 2), 1)
        self.assertEqual(sum(vm.fb.pixels), 1)

    def test_draw_with_vf_coordinates(self):
        vm = make_vm(0xA300, 0x6F05, 0x6000, 0xDF01)
        vm.mem.write(0x300, 0x80)
        run(vm, 4)
        self.assertEqual(vm.fb.get_pixel(5, 0), 1)
        self.assertEqual(vm.v[0xF], 0)

    def test_snapshot_keeps_dirty_flag(self):
        vm = make_vm(0x00E0)
        vm.cycle()
        vm.get_framebuffer_snapshot()
        self.assertTrue(vm.is_dirty())
        vm.clear_dirty()
        self.assertFalse(vm.is_dirty())


# ---------------------------------------------------------------------------
#  Fatal decode errors
# ---------------------------------------------------------------------------

class TestUnknownOpcode(unittest.TestCase):
    def test_unknown_halts_without_side_effects(self):
        vm = make_vm(0x6005, 0xA123, 0x5123)
        run(vm, 2)
        vm.timers.delay = 3
        before = (list(vm.v), vm.i, vm.pc, vm.regs.sp, list(vm.regs.stack),
                  bytes(vm.mem.data), vm.get_framebuffer_snapshot(),
                  vm.timers.delay, vm.is_dirty())
        result = vm.cycle()
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, UnknownOpcodeError)
        self.assertEqual(result.error.word, 0x5123)
        self.assertEqual(result.error.pc, 0x204)
        self.assertEqual(result.ins.op, OP_UNKNOWN)
        after = (list(vm.v), vm.i, vm.pc, vm.regs.sp, list(vm.regs.stack),
                 bytes(vm.mem.data), vm.get_framebuffer_snapshot(),
                 vm.timers.delay, vm.is_dirty())
        self.assertEqual(before, after)
        self.assertTrue(vm.halted)
        self.assertIs(vm.error, result.error)

    def test_halted_vm_refuses_to_cycle(self):
        vm = make_vm(0xFFFF)
        self.assertIsInstance(vm.cycle().error, UnknownOpcodeError)
        with self.assertRaises(HaltError):
            vm.cycle()
        self.assertEqual(vm.cycle_count, 0)

    def test_message_carries_word(self):
        err = UnknownOpcodeError(0x5123, 0x200)
        self.assertIn("0x5123", str(err))
        self.assertIsInstance(err, FatalError)

    def test_on_halt_callback(self):
        seen = []
        vm = Chip8()
        vm.on_halt = seen.append
        vm.load(rom(0x0123))
        result = vm.cycle()
        self.assertIs(seen[0], result.error)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].word, 0x0123)


if __name__ == "__main__":
    unittest.main()
