from __future__ import annotations

from ..schemas import (
    CompressImageInput,
    ConvertImageInput,
    RemoveBackgroundInput,
    ResizeImageInput,
    UpscaleImageInput,
    WatermarkImageInput,
)
from .base import transform_tool

# Image tools run against the iLoveIMG backend and need iLoveIMG project keys.
IMAGE_TOOLS = (
    transform_tool(
        "compress_image",
        "Compress JPG, PNG, or GIF images to reduce file size. Requires iLoveIMG project keys.",
        CompressImageInput,
        "Image compressed",
        backend="image",
    ),
    transform_tool(
        "resize_image",
        "Resize image by pixels or percentage. Maintains aspect ratio by default. Requires iLoveIMG project keys.",
        ResizeImageInput,
        "Image resized",
        backend="image",
    ),
    transform_tool(
        "convert_image",
        "Convert image to JPG, PNG, GIF, or HEIC format. Requires iLoveIMG project keys.",
        ConvertImageInput,
        "Image converted",
        backend="image",
    ),
    transform_tool(
        "remove_background",
        "Remove background from image using AI. Outputs transparent PNG. Requires iLoveIMG project keys.",
        RemoveBackgroundInput,
        "Background removed",
        backend="image",
    ),
    transform_tool(
        "upscale_image",
        "Upscale image using AI. Supports 2x or 4x enlargement. Requires iLoveIMG project keys.",
        UpscaleImageInput,
        "Image upscaled",
        backend="image",
    ),
    transform_tool(
        "watermark_image",
        "Add a text watermark to images. Requires iLoveIMG project keys.",
        WatermarkImageInput,
        "Watermark added",
        backend="image",
    ),
)
