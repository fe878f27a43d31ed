"""
SceneCapture - Metadata Writer

Serializes one FrameRecord per frame to <output>/meta/frame_<index>.json.

The field names and nesting below are relied on by downstream tooling:

{
  "frame": int, "seed": int, "rgb": str, "mask": str,
  "camera": {"position": [x,y,z], "basis_row0": [..], "basis_row1": [..], "basis_row2": [..]},
  "light": {"rotation_rad": [pitch, yaw, roll]},
  "objects": [{"name": str, "position": [x,y,z], "rotation_y_rad": float, "mask_color_rgb": "RRGGBB"}]
}
"""

import json
from pathlib import Path
from typing import Optional

from .config import OutputConfig
from .logging_utils import CaptureLogger
from .persistence import Persistence
from .state import FrameRecord, hex_color


class MetadataWriter:
    """
    Writes FrameRecords through a Persistence backend.

    Output is a pure function of the record and the output layout: keys
    are emitted in schema order with 2-space indentation, so identical
    records give byte-identical files.
    """

    MODULE_NAME = "MetadataWriter"

    def __init__(
        self,
        store: Persistence,
        output: OutputConfig,
        logger: Optional[CaptureLogger] = None,
    ):
        self.store = store
        self.output = output
        self.logger = logger or CaptureLogger(self.MODULE_NAME, console_output=False)
        self.logger.log_init(meta_dir=output.meta_dir)

    def path_for(self, frame_index: int) -> Path:
        return self.output.meta_dir / f"{self.output.frame_stem(frame_index)}.json"

    @staticmethod
    def to_dict(record: FrameRecord) -> dict:
        """Schema dict for a record. Only trackable objects are listed."""
        camera = record.camera
        return {
            "frame": record.frame,
            "seed": record.seed,
            "rgb": record.rgb,
            "mask": record.mask,
            "camera": {
                "position": list(camera.position),
                "basis_row0": list(camera.basis[0]),
                "basis_row1": list(camera.basis[1]),
                "basis_row2": list(camera.basis[2]),
            },
            "light": {
                "rotation_rad": list(record.light.rotation_rad),
            },
            "objects": [
                {
                    "name": obj.name,
                    "position": list(obj.position),
                    "rotation_y_rad": obj.yaw,
                    "mask_color_rgb": hex_color(obj.mask_color),
                }
                for obj in record.objects
                if obj.trackable
            ],
        }

    def serialize(self, record: FrameRecord) -> str:
        return json.dumps(self.to_dict(record), indent=2) + "\n"

    def write(self, record: FrameRecord) -> Path:
        """
        Persist a record.

        Raises:
            PersistenceError: the store could not write the file
        """
        path = self.path_for(record.frame)
        self.store.write_text(path, self.serialize(record))
        self.logger.log_output("metadata written", frame=record.frame, path=path)
        return path
