"""
CHIP-8 Peripheral Devices
==========================
State owned by the virtual machine that is not part of the register
file:

  - TimerUnit  : delay and sound countdown counters, ticked at 60 Hz
  - Framebuffer: 64x32 monochrome pixels with XOR sprite blit
  - Keypad     : 16-key hex pad, written by the host

None of these know about instruction decoding; chip8.py drives them.
"""

from __future__ import annotations

import threading

import numpy as np

SCREEN_W = 64
SCREEN_H = 32
SPRITE_W = 8
NUM_KEYS = 16


# ---------------------------------------------------------------------------
#  Timers
# ---------------------------------------------------------------------------

class TimerUnit:
    """Delay and sound counters.  Each tick decrements both by one while
    they are above zero; nothing else in the machine advances them."""

    def __init__(self):
        self.delay: int = 0
        self.sound: int = 0
        self.tick_count: int = 0

    def reset(self):
        self.delay = 0
        self.sound = 0
        self.tick_count = 0

    def tick(self):
        if self.delay > 0:
            self.delay -= 1
        if self.sound > 0:
            self.sound -= 1
        self.tick_count += 1

    @property
    def sound_active(self) -> bool:
        """True while the buzzer should be audible."""
        return self.sound > 0


# ---------------------------------------------------------------------------
#  Framebuffer
# ---------------------------------------------------------------------------

class Framebuffer:
    """Monochrome pixel grid, one byte (0 or 1) per pixel, row-major.

    ``dirty`` is set by clear() and blit_sprite() and stays set until the
    consumer calls clear_dirty().
    """

    def __init__(self, width: int = SCREEN_W, height: int = SCREEN_H):
        self.width = width
        self.height = height
        self.pixels = bytearray(width * height)
        self.dirty: bool = False

    def reset(self):
        self.pixels = bytearray(self.width * self.height)
        self.dirty = False

    def clear(self):
        self.pixels[:] = bytes(len(self.pixels))
        self.dirty = True

    def get_pixel(self, x: int, y: int) -> int:
        return self.pixels[y * self.width + x]

    def blit_sprite(self, x: int, y: int, rows, wrap: bool = False) -> bool:
        """XOR an 8-pixel-wide sprite onto the screen at (x, y).

        The origin wraps onto the screen; pixels running off the right
        or bottom edge are clipped unless *wrap* is set.  Returns True if
        any lit pixel was turned off.
        """
        x0 = x % self.width
        y0 = y % self.height
        collision = False
        for dy, bits in enumerate(rows):
            py = y0 + dy
            if py >= self.height:
                if not wrap:
                    break
                py %= self.height
            for dx in range(SPRITE_W):
                if not (bits & (0x80 >> dx)):
                    continue
                px = x0 + dx
                if px >= self.width:
                    if not wrap:
                        break
                    px %= self.width
                idx = py * self.width + px
                if self.pixels[idx]:
                    collision = True
                self.pixels[idx] ^= 1
        self.dirty = True
        return collision

    def snapshot(self) -> bytes:
        """Copy of the pixel grid.  Does not touch the dirty flag."""
        return bytes(self.pixels)

    def clear_dirty(self):
        self.dirty = False

    def as_array(self) -> np.ndarray:
        """Pixels as a (height, width) uint8 array (a copy)."""
        return np.frombuffer(self.snapshot(), dtype=np.uint8).reshape(
            self.height, self.width)

    def render_text(self, on: str = "#", off: str = ".") -> str:
        rows = []
        for y in range(self.height):
            row = self.pixels[y * self.width:(y + 1) * self.width]
            rows.append("".join(on if p else off for p in row))
        return "\n".join(rows)


# ---------------------------------------------------------------------------
#  Keypad
# ---------------------------------------------------------------------------

class Keypad:
    """16-key hex keypad.

    The host (display thread) writes key state; the interpreter only reads
    snapshots.  A lock covers both sides so a snapshot never observes a
    half-applied update.
    """

    def __init__(self):
        self._keys = [False] * NUM_KEYS
        self._last_pressed: int | None = None
        self._lock = threading.Lock()

    def reset(self):
        with self._lock:
            self._keys = [False] * NUM_KEYS
            self._last_pressed = None

    def set_key(self, index: int, pressed: bool):
        if not 0 <= index < NUM_KEYS:
            raise ValueError(f"Key index must be 0-15, got {index}")
        with self._lock:
            self._keys[index] = bool(pressed)
            if pressed:
                self._last_pressed = index

    def is_pressed(self, index: int) -> bool:
        with self._lock:
            return self._keys[index]

    def snapshot(self) -> tuple[bool, ...]:
        with self._lock:
            return tuple(self._keys)

    def take_last_pressed(self) -> int | None:
        """Return and clear the most recently pressed key.

        Only the host consumes the latch; the interpreter never clears it,
        since key state is read-only to instruction execution.
        """
        with self._lock:
            key = self._last_pressed
            self._last_pressed = None
            return key
