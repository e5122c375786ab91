"""Image optimization."""

from __future__ import annotations

import re
from io import BytesIO
from typing import Any, Dict

from PIL import Image

from .models import FileUnit

_SVG_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_SVG_BETWEEN_TAGS = re.compile(r">\s+<")


def minify_svg(markup: str) -> str:
    markup = _SVG_COMMENT.sub("", markup)
    markup = _SVG_BETWEEN_TAGS.sub("><", markup)
    return markup.strip()


def _save_options(image: Image.Image) -> Dict[str, Any]:
    fmt = image.format
    if fmt == "JPEG":
        options: Dict[str, Any] = {"optimize": True, "progressive": True, "quality": "keep"}
        if "icc_profile" in image.info:
            options["icc_profile"] = image.info["icc_profile"]
        if "exif" in image.info:
            options["exif"] = image.info["exif"]
        return options
    if fmt == "PNG":
        return {"optimize": True}
    if fmt == "GIF":
        return {"optimize": True, "save_all": getattr(image, "is_animated", False)}
    return {}


def optimize_image(contents: bytes, suffix: str) -> bytes:
    """Return the smaller of the original and the re-encoded image."""

    if suffix.lower() == ".svg":
        optimized = minify_svg(contents.decode("utf-8")).encode("utf-8")
    else:
        with Image.open(BytesIO(contents)) as image:
            fmt = image.format
            buffer = BytesIO()
            image.save(buffer, format=fmt, **_save_options(image))
            optimized = buffer.getvalue()
    return optimized if len(optimized) < len(contents) else contents


def optimize_unit(unit: FileUnit) -> FileUnit:
    unit.contents = optimize_image(unit.contents, unit.source.suffix)
    return unit


__all__ = ["minify_svg", "optimize_image", "optimize_unit"]
