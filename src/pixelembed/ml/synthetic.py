"""Synthetic test image for checking the preprocessing pipeline end to end."""

from __future__ import annotations

from typing import TYPE_CHECKING

from PIL import Image, ImageDraw

if TYPE_CHECKING:
    from pathlib import Path

BLUE = (0, 0, 255)
RED = (255, 0, 0)
GREEN = (0, 255, 0)


def create_test_image(width: int = 300, height: int = 200) -> Image.Image:
    """Draw a blue canvas with a red disc and a green bar.

    Shape coordinates are fixed, so images narrower than 250 px or shorter
    than 150 px clip the shapes.
    """
    image = Image.new("RGB", (width, height), BLUE)
    draw = ImageDraw.Draw(image)
    # Pillow boxes are inclusive of the end pixel.
    draw.ellipse((50, 50, 149, 149), fill=RED)
    draw.rectangle((150, 75, 249, 124), fill=GREEN)
    return image


def save_test_image(path: str | Path, width: int = 300, height: int = 200) -> None:
    """Write the synthetic image; the format follows the file extension."""
    create_test_image(width, height).save(path)
