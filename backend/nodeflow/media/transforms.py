"""
Media-transform capability: fetch source media, crop images, extract video frames.

Results are returned as `data:image/jpeg;base64,...` references so they can be
fed straight into downstream nodes (LLM image inputs, further crops) without a
storage round trip. Decoding and encoding are CPU-bound and run in a worker
thread.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import math
import os
import tempfile
from dataclasses import dataclass

import cv2
import httpx
from PIL import Image, UnidentifiedImageError

from nodeflow import config
from nodeflow.services.node_errors import NodeInputError
from nodeflow.services.timestamps import PercentOfDuration, Seconds

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90


@dataclass(frozen=True)
class FetchedMedia:
    content: bytes
    mime_type: str


def _decode_data_url(url: str) -> FetchedMedia:
    header, _, encoded = url.partition(",")
    if not encoded:
        raise NodeInputError("Invalid data URL: missing payload")
    mime_type = header[len("data:"):].split(";")[0] or "application/octet-stream"
    if ";base64" in header:
        try:
            content = base64.b64decode(encoded)
        except ValueError as e:
            raise NodeInputError(f"Invalid base64 media data: {e}") from e
    else:
        content = encoded.encode("utf-8")
    return FetchedMedia(content=content, mime_type=mime_type)


async def fetch_media(url: str, default_mime_type: str = "application/octet-stream") -> FetchedMedia:
    """Download a media reference (http(s) or data URL) into memory."""
    url = (url or "").strip()
    if url.startswith("data:"):
        return _decode_data_url(url)
    if not (url.startswith("http://") or url.startswith("https://")):
        raise NodeInputError(f"Unsupported media source: {url[:50]}")

    async with httpx.AsyncClient(
        timeout=config.media_fetch_timeout_seconds(), follow_redirects=True
    ) as client:
        resp = await client.get(url)
        resp.raise_for_status()

    mime_type = resp.headers.get("content-type", default_mime_type).split(";")[0].strip()
    return FetchedMedia(content=resp.content, mime_type=mime_type or default_mime_type)


def _to_jpeg_data_url(jpeg_bytes: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(jpeg_bytes).decode("utf-8")


# ---------------------------------------------------------------------------
# Crop
# ---------------------------------------------------------------------------


def compute_crop_box(
    width: int,
    height: int,
    x_percent: float,
    y_percent: float,
    width_percent: float,
    height_percent: float,
) -> tuple[int, int, int, int]:
    """Pixel box (left, top, right, bottom) for a percentage crop, validated against the image."""
    crop_x = math.floor(width * x_percent / 100)
    crop_y = math.floor(height * y_percent / 100)
    crop_width = math.floor(width * width_percent / 100)
    crop_height = math.floor(height * height_percent / 100)

    if crop_x + crop_width > width:
        raise NodeInputError(
            f"Invalid crop: x ({crop_x}) + width ({crop_width}) = {crop_x + crop_width} "
            f"exceeds image width ({width})"
        )
    if crop_y + crop_height > height:
        raise NodeInputError(
            f"Invalid crop: y ({crop_y}) + height ({crop_height}) = {crop_y + crop_height} "
            f"exceeds image height ({height})"
        )
    if crop_width <= 0 or crop_height <= 0:
        raise NodeInputError(
            f"Invalid crop dimensions: width ({crop_width}) and height ({crop_height}) must be positive"
        )
    return crop_x, crop_y, crop_x + crop_width, crop_y + crop_height


def _crop_bytes(
    image_bytes: bytes,
    x_percent: float,
    y_percent: float,
    width_percent: float,
    height_percent: float,
) -> bytes:
    try:
        img = Image.open(io.BytesIO(image_bytes))
    except UnidentifiedImageError as e:
        raise NodeInputError("Cannot open image: unsupported or corrupt file") from e
    with img:
        box = compute_crop_box(
            img.width, img.height, x_percent, y_percent, width_percent, height_percent
        )
        logger.info(
            "Cropping image %dx%d to box %s", img.width, img.height, box
        )
        cropped = img.crop(box)
        if cropped.mode != "RGB":
            cropped = cropped.convert("RGB")
        buffer = io.BytesIO()
        cropped.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    return buffer.getvalue()


async def crop_image(
    image_url: str,
    x_percent: float = 0,
    y_percent: float = 0,
    width_percent: float = 100,
    height_percent: float = 100,
) -> str:
    media = await fetch_media(image_url, default_mime_type="image/jpeg")
    jpeg = await asyncio.to_thread(
        _crop_bytes, media.content, x_percent, y_percent, width_percent, height_percent
    )
    logger.info("Image crop completed (%d bytes)", len(jpeg))
    return _to_jpeg_data_url(jpeg)


# ---------------------------------------------------------------------------
# Frame extraction
# ---------------------------------------------------------------------------


def _video_suffix(mime_type: str) -> str:
    return {
        "video/webm": ".webm",
        "video/quicktime": ".mov",
        "video/x-msvideo": ".avi",
        "video/avi": ".avi",
        "video/x-matroska": ".mkv",
    }.get(mime_type, ".mp4")


def _extract_frame_from_file(video_path: str, timestamp: Seconds | PercentOfDuration) -> tuple[bytes, float]:
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise NodeInputError("Cannot open video: unsupported or corrupt file")
    try:
        fps = cap.get(cv2.CAP_PROP_FPS)
        frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT)
        duration = frame_count / fps if fps > 0 else 0.0

        seek_time = timestamp.resolve(duration)
        if seek_time < 0:
            raise NodeInputError("Timestamp cannot be negative")
        if duration > 0 and seek_time > duration:
            raise NodeInputError(
                f"Timestamp {seek_time:.2f}s is beyond the video duration ({duration:.2f}s)"
            )

        # Seek by frame index; the last frame sits at frame_count - 1.
        frame_index = int(seek_time * fps) if fps > 0 else 0
        if frame_count > 0:
            frame_index = min(frame_index, int(frame_count) - 1)
        cap.set(cv2.CAP_PROP_POS_FRAMES, frame_index)
        ok, frame = cap.read()
        if not ok or frame is None:
            raise NodeInputError(f"Failed to decode frame at t={seek_time:.2f}s")

        encoded, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
        if not encoded:
            raise ValueError("Failed to encode extracted frame")
        return buffer.tobytes(), seek_time
    finally:
        cap.release()


def _extract_frame_bytes(video_bytes: bytes, suffix: str, timestamp: Seconds | PercentOfDuration) -> tuple[bytes, float]:
    # OpenCV reads from a path, not a buffer.
    fd, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(video_bytes)
        return _extract_frame_from_file(path, timestamp)
    finally:
        try:
            os.unlink(path)
        except OSError:
            logger.warning("Could not remove temp video %s", path)


async def extract_frame(video_url: str, timestamp: Seconds | PercentOfDuration) -> str:
    media = await fetch_media(video_url, default_mime_type="video/mp4")
    jpeg, seek_time = await asyncio.to_thread(
        _extract_frame_bytes, media.content, _video_suffix(media.mime_type), timestamp
    )
    logger.info("Frame extraction completed at t=%.2fs (%d bytes)", seek_time, len(jpeg))
    return _to_jpeg_data_url(jpeg)
