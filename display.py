"""
CHIP-8 Display
===============
Renders the 64x32 framebuffer in a pygame window and feeds keyboard
events back into the 16-key pad.  Runs in a background thread that also
acts as the 60 Hz scheduler: every iteration runs one emulator frame
(``Chip8System.run_frame``), then redraws if the frame changed.

Keyboard layout (host key -> CHIP-8 key):

    1 2 3 4        1 2 3 C
    Q W E R   ->   4 5 6 D
    A S D F        7 8 9 E
    Z X C V        A 0 B F

Usage (programmatic):
    from display import Chip8Display
    disp = Chip8Display(sys_emu)
    disp.start()       # launches background thread
    disp.wait()        # until the window is closed
    disp.stop()

Usage (CLI):
    python cli.py game.ch8 --display
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING

import numpy as np

from devices import SCREEN_W, SCREEN_H

if TYPE_CHECKING:
    from system import Chip8System

# Host key names in CHIP-8 key order 0..F
KEY_LAYOUT = "x123qweasdzc4rfv"

BEEP_HZ = 440
BEEP_SAMPLE_RATE = 22050


def build_keymap(pygame_module) -> dict[int, int]:
    """Map pygame key codes to keypad indices."""
    return {getattr(pygame_module, f"K_{ch}"): idx
            for idx, ch in enumerate(KEY_LAYOUT)}


def frame_to_rgb(pixels: bytes, fg: tuple, bg: tuple) -> np.ndarray:
    """Convert a framebuffer snapshot to a (w, h, 3) array for surfarray."""
    grid = np.frombuffer(pixels, dtype=np.uint8).reshape(SCREEN_H, SCREEN_W)
    palette = np.array([bg, fg], dtype=np.uint8)
    return palette[grid].transpose(1, 0, 2)


def square_wave(freq: int = BEEP_HZ, rate: int = BEEP_SAMPLE_RATE,
                volume: float = 0.25) -> np.ndarray:
    """One second of a 16-bit stereo square wave."""
    t = np.arange(rate)
    mono = np.where((t * freq * 2 // rate) % 2 == 0, 1, -1)
    mono = (mono * volume * 32767).astype(np.int16)
    return np.column_stack((mono, mono))


class Chip8Display:
    """Background-threaded pygame window driving a Chip8System."""

    def __init__(self, sys_emu: "Chip8System", scale: int | None = None,
                 title: str | None = None, sound: bool = True):
        self.sys = sys_emu
        cfg = sys_emu.config
        self.scale = max(1, scale if scale is not None else cfg.scale)
        self.title = title or cfg.name
        self.fps = cfg.frame_rate
        self.sound = sound
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._started = threading.Event()
        self._last_frame = bytes(SCREEN_W * SCREEN_H)
        self._frame_pending = True
        self._reported_halt = False
        self.error: Exception | None = None

    # -- public API -------------------------------------------------------

    def start(self):
        """Start the display thread.  Returns once the window is open or
        setup has failed (see ``error``)."""
        self.sys.on_frame = self._on_frame
        self._stop_event.clear()
        self._started.clear()
        self._thread = threading.Thread(target=self._run, daemon=True,
                                        name="chip8-display")
        self._thread.start()
        self._started.wait(timeout=5.0)

    def stop(self):
        """Signal the display thread to shut down and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            self._thread = None

    def wait(self):
        """Block until the window is closed."""
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -- internals --------------------------------------------------------

    def _on_frame(self, snapshot: bytes):
        self._last_frame = snapshot
        self._frame_pending = True

    def _run(self):
        """Main display loop (runs in background thread)."""
        pygame = None
        beep = None
        try:
            import pygame

            cfg = self.sys.config
            pygame.init()
            pygame.display.set_caption(self.title)
            screen = pygame.display.set_mode((SCREEN_W * self.scale,
                                              SCREEN_H * self.scale))
            fb_surface = pygame.Surface((SCREEN_W, SCREEN_H))
            clock = pygame.time.Clock()
            keymap = build_keymap(pygame)
            beep = self._make_beep(pygame) if self.sound else None

            def _sound(active: bool):
                if beep is None:
                    return
                if active:
                    beep.play(loops=-1)
                else:
                    beep.stop()

            self.sys.on_sound = _sound
            self._started.set()

            while not self._stop_event.is_set():
                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        self._stop_event.set()
                        return
                    elif event.type in (pygame.KEYDOWN, pygame.KEYUP):
                        if event.key == pygame.K_ESCAPE:
                            self._stop_event.set()
                            return
                        idx = keymap.get(event.key)
                        if idx is not None:
                            self.sys.set_key(idx, event.type == pygame.KEYDOWN)

                if not self.sys.halted:
                    self.sys.run_frame()
                elif not self._reported_halt:
                    self._report_halt(self.sys.vm.error)

                if self._frame_pending:
                    self._frame_pending = False
                    pygame.surfarray.blit_array(
                        fb_surface,
                        frame_to_rgb(self._last_frame, cfg.foreground,
                                     cfg.background))
                    scaled = pygame.transform.scale(fb_surface,
                                                    screen.get_size())
                    screen.blit(scaled, (0, 0))
                    pygame.display.flip()

                clock.tick(self.fps)

        except Exception as e:
            self.error = e
            print(f"\n[display] error: {e}", file=sys.stderr)
        finally:
            # Unblocks start() when setup failed
            self._started.set()
            if beep is not None:
                beep.stop()
            if pygame is not None:
                pygame.quit()

    def _make_beep(self, pygame):
        try:
            pygame.mixer.init(frequency=BEEP_SAMPLE_RATE, size=-16, channels=2)
            return pygame.sndarray.make_sound(square_wave())
        except pygame.error as e:
            print(f"[display] audio unavailable: {e}", file=sys.stderr)
            return None

    def _report_halt(self, err):
        self._reported_halt = True
        print(f"\n[chip8] halted: {err}", file=sys.stderr)


class HeadlessDisplay:
    """No-op display for testing: records every relayed frame."""

    def __init__(self, sys_emu: "Chip8System"):
        self.sys = sys_emu
        self.snapshots: list[bytes] = []

    def start(self):
        self.sys.on_frame = self.snapshots.append

    def stop(self):
        if self.sys.on_frame == self.snapshots.append:
            self.sys.on_frame = None

    def last_frame(self) -> np.ndarray | None:
        """Most recent frame as a (height, width) uint8 array."""
        if not self.snapshots:
            return None
        return np.frombuffer(self.snapshots[-1], dtype=np.uint8).reshape(
            SCREEN_H, SCREEN_W)

    @property
    def running(self) -> bool:
        return False
