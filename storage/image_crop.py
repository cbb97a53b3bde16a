"""Fixed-aspect cover crop for the hero / social preview image."""
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from PIL import Image

logger = logging.getLogger(__name__)

TARGET_WIDTH = 1200
TARGET_HEIGHT = 630


@dataclass(frozen=True)
class CropGeometry:
    """Resize size and extraction origin for one crop."""
    resized_width: int
    resized_height: int
    left: int
    top: int
    width: int
    height: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.left + self.width, self.top + self.height)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, upper: int) -> int:
    return int(min(max(value, 0), max(upper, 0)))


def compute_crop_geometry(source_width: int, source_height: int,
                          scale: float = 1.0,
                          focus_x: float = 50, focus_y: float = 50,
                          target_width: int = TARGET_WIDTH,
                          target_height: int = TARGET_HEIGHT) -> CropGeometry:
    """
    Compute how to cover a fixed box from an arbitrary source image.

    The source is scaled so it fully covers the target box, multiplied by
    the user zoom, and the window is centred on the focus point. The origin
    is clamped so the window never leaves the resized image.

    Args:
        source_width: Source image width in pixels
        source_height: Source image height in pixels
        scale: User zoom factor (already clamped to [0.5, 2.0])
        focus_x: Horizontal focus point in percent
        focus_y: Vertical focus point in percent
        target_width: Output width
        target_height: Output height

    Returns:
        CropGeometry for the resize and extraction
    """
    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"Invalid source size: {source_width}x{source_height}")

    base_scale = max(target_width / source_width, target_height / source_height)
    total_scale = base_scale * scale

    resized_width = _round_half_up(source_width * total_scale)
    resized_height = _round_half_up(source_height * total_scale)

    focus_px_x = focus_x / 100 * resized_width
    focus_px_y = focus_y / 100 * resized_height

    left = _clamp(_round_half_up(focus_px_x - target_width / 2), resized_width - target_width)
    top = _clamp(_round_half_up(focus_px_y - target_height / 2), resized_height - target_height)

    return CropGeometry(
        resized_width=resized_width,
        resized_height=resized_height,
        left=left,
        top=top,
        width=target_width,
        height=target_height
    )


def crop_to_fixed_aspect(source_path: Union[str, Path], dest_path: Union[str, Path],
                         scale: float = 1.0, focus_x: float = 50, focus_y: float = 50,
                         target_width: int = TARGET_WIDTH,
                         target_height: int = TARGET_HEIGHT) -> CropGeometry:
    """
    Produce a fixed-size crop of an image file.

    Args:
        source_path: Source image
        dest_path: Output path; the format follows the file extension
        scale: User zoom factor
        focus_x: Horizontal focus point in percent
        focus_y: Vertical focus point in percent

    Returns:
        The geometry that was applied
    """
    dest_path = Path(dest_path)
    dest_path.parent.mkdir(parents=True, exist_ok=True)

    with Image.open(source_path) as img:
        geometry = compute_crop_geometry(
            img.width, img.height, scale, focus_x, focus_y,
            target_width, target_height
        )
        if geometry.resized_width < target_width or geometry.resized_height < target_height:
            logger.warning(
                f"Scale {scale} leaves {Path(source_path).name} at "
                f"{geometry.resized_width}x{geometry.resized_height}, smaller than "
                f"{target_width}x{target_height}; the crop will be padded"
            )
        resized = img.resize(
            (geometry.resized_width, geometry.resized_height),
            Image.Resampling.LANCZOS
        )
        cropped = resized.crop(geometry.box)

        if dest_path.suffix.lower() in ('.jpg', '.jpeg') and cropped.mode != 'RGB':
            cropped = cropped.convert('RGB')
        cropped.save(dest_path)

    logger.info(
        f"Cropped {Path(source_path).name} to {target_width}x{target_height} "
        f"(resize {geometry.resized_width}x{geometry.resized_height}, "
        f"origin {geometry.left},{geometry.top})"
    )
    return geometry
