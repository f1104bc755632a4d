"""Machine configuration for the CHIP-8 virtual machine."""

from dataclasses import dataclass, field, fields
import json


@dataclass
class Quirks:
    """Behaviour switches where CHIP-8 interpreters disagree.

    The defaults follow conventional CHIP-8 semantics; FX65 advancing I
    past the loaded block is the COSMAC behaviour.
    """
    skip_compare_index: bool = False      # 3XNN/4XNN compare X itself, not VX
    load_increments_index: bool = True    # FX65 leaves I = I + X + 1
    sprite_wrap: bool = False             # DXYN wraps pixels instead of clipping
    return_advances_pc: bool = False      # 00EE adds 2 after popping

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> 'Quirks':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown quirk(s): {', '.join(sorted(unknown))}")
        for k, v in data.items():
            if not isinstance(v, bool):
                raise ValueError(f"Quirk {k} must be true or false, got {v!r}")
        return cls(**data)


@dataclass
class MachineConfig:
    """Driver-level settings: execution rate, display and quirks."""
    name: str = "CHIP-8"
    cycles_per_frame: int = 10    # ~600 instructions/s at 60 Hz
    frame_rate: int = 60          # timer tick and render rate (Hz)
    scale: int = 10               # window pixels per CHIP-8 pixel
    foreground: tuple = (255, 255, 255)
    background: tuple = (0, 0, 0)
    quirks: Quirks = field(default_factory=Quirks)

    def __post_init__(self):
        if self.cycles_per_frame < 1:
            raise ValueError("cycles_per_frame must be at least 1")
        if self.frame_rate < 1:
            raise ValueError("frame_rate must be at least 1")
        self.scale = max(1, self.scale)
        self.foreground = tuple(self.foreground)
        self.background = tuple(self.background)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "cycles_per_frame": self.cycles_per_frame,
            "frame_rate": self.frame_rate,
            "scale": self.scale,
            "foreground": list(self.foreground),
            "background": list(self.background),
            "quirks": self.quirks.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MachineConfig':
        defaults = cls()
        return cls(
            name=data.get("name", defaults.name),
            cycles_per_frame=int(data.get("cycles_per_frame", defaults.cycles_per_frame)),
            frame_rate=int(data.get("frame_rate", defaults.frame_rate)),
            scale=int(data.get("scale", defaults.scale)),
            foreground=tuple(data.get("foreground", defaults.foreground)),
            background=tuple(data.get("background", defaults.background)),
            quirks=Quirks.from_dict(data.get("quirks", {})),
        )

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'MachineConfig':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
