"""
SceneCapture - Mask Registry

Assigns every trackable object a flat segmentation color for the whole run.

Colors come from a fixed ordered palette and are handed out cyclically in
discovery order. With more trackable objects than palette entries the
palette wraps and objects whose trackable index is congruent modulo the
palette size share a color. That collision is kept as-is and reported as a
warning; masks for such objects cannot be told apart.
"""

from typing import Optional, Sequence

from .errors import ConfigurationError
from .logging_utils import CaptureLogger
from .state import RGB, TrackedObject, hex_color, parse_hex_color


# Visually distinct, no black or white. Red first.
DEFAULT_MASK_PALETTE: tuple[RGB, ...] = (
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (255, 128, 0),
    (128, 0, 255),
    (0, 128, 255),
    (255, 0, 128),
    (128, 255, 0),
    (0, 255, 128),
    (128, 64, 0),
    (0, 128, 128),
    (128, 0, 64),
    (64, 128, 255),
)


def palette_from_hex(entries: Sequence[str]) -> tuple[RGB, ...]:
    """Palette from 'RRGGBB' strings; empty input gives the default palette."""
    if not entries:
        return DEFAULT_MASK_PALETTE
    return tuple(parse_hex_color(e) for e in entries)


class MaskRegistry:
    """
    Object name -> mask color table for one run.

    `assign()` is called once before the first capture. Calling it again
    with the same ordering returns the same table; a different ordering is
    a configuration error, since masks already written would no longer
    match.
    """

    MODULE_NAME = "MaskRegistry"

    def __init__(
        self,
        palette: Sequence[RGB] = DEFAULT_MASK_PALETTE,
        logger: Optional[CaptureLogger] = None,
    ):
        palette = tuple(tuple(int(c) for c in color) for color in palette)
        if not palette:
            raise ConfigurationError("Mask palette is empty")
        for color in palette:
            if len(color) != 3 or any(c < 0 or c > 255 for c in color):
                raise ConfigurationError(f"Invalid palette color {color}")
            if color in ((0, 0, 0), (255, 255, 255)):
                raise ConfigurationError(
                    f"Palette color {hex_color(color)} is reserved (black/white)"
                )
        if len(set(palette)) != len(palette):
            raise ConfigurationError("Mask palette contains duplicate colors")

        self.palette: tuple[RGB, ...] = palette
        self.logger = logger or CaptureLogger(self.MODULE_NAME, console_output=False)
        self._table: dict[str, RGB] = {}
        self._order: Optional[tuple[str, ...]] = None
        self._collisions: list[tuple[str, str]] = []

        self.logger.log_init(palette_size=len(self.palette))

    @property
    def table(self) -> dict[str, RGB]:
        """Copy of the name -> color table, in assignment order."""
        return dict(self._table)

    @property
    def collisions(self) -> list[tuple[str, str]]:
        """(earlier, later) name pairs sharing a color because the palette wrapped."""
        return list(self._collisions)

    def assign(self, objects: Sequence[TrackedObject]) -> dict[str, RGB]:
        """
        Assign palette colors to trackable objects in the given order.

        Sets `mask_color` on each trackable object and returns the table.

        Raises:
            ConfigurationError: duplicate trackable names, or a second call
                with a different object ordering
        """
        order = tuple(obj.name for obj in objects if obj.trackable)

        if self._order is not None:
            if order != self._order:
                raise ConfigurationError(
                    "Mask colors already assigned for a different object ordering",
                    issues=[f"assigned: {list(self._order)}", f"requested: {list(order)}"],
                )
            for obj in objects:
                if obj.trackable:
                    obj.mask_color = self._table[obj.name]
            return self.table

        if len(set(order)) != len(order):
            duplicates = sorted({n for n in order if order.count(n) > 1})
            raise ConfigurationError(
                "Trackable object names must be unique", issues=duplicates
            )

        self.logger.log_input("objects to register", trackable=len(order),
                              static=len(objects) - len(order))

        table: dict[str, RGB] = {}
        owner_by_color: dict[RGB, str] = {}
        collisions: list[tuple[str, str]] = []
        index = 0
        for obj in objects:
            if not obj.trackable:
                continue
            color = self.palette[index % len(self.palette)]
            if color in owner_by_color:
                collisions.append((owner_by_color[color], obj.name))
            else:
                owner_by_color[color] = obj.name
            table[obj.name] = color
            obj.mask_color = color
            index += 1

        self._table = table
        self._order = order
        self._collisions = collisions

        if collisions:
            self.logger.warning(
                "Mask palette exhausted, colors reused",
                trackable_objects=len(order),
                palette_size=len(self.palette),
                collisions=len(collisions),
                suggested_fix="Supply a larger mask_palette in the run configuration",
            )

        self.logger.log_output(
            "mask colors assigned",
            table={name: hex_color(c) for name, c in table.items()},
        )
        return self.table

    def to_dict(self) -> dict:
        return {
            "palette": [hex_color(c) for c in self.palette],
            "assignments": {name: hex_color(c) for name, c in self._table.items()},
            "collisions": [list(pair) for pair in self._collisions],
        }
