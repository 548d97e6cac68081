"""
Poster thumbnails for uploaded movies.

A single frame is taken one second into the clip, scaled to 320x180 and
encoded as JPEG. Clips no longer than the seek offset (or with no duration in
their metadata) fall back to the first frame, as does a seek that lands past
the last frame.
"""
import asyncio
import io
import logging
import os
import shutil
import tempfile
from typing import BinaryIO, Optional

import ffmpeg
from PIL import Image

from movieshare.errors import ThumbnailError

logger = logging.getLogger("thumbnail")

SEEK_OFFSET_SECONDS = 1.0
THUMBNAIL_SIZE = (320, 180)
JPEG_QUALITY = 70


def pick_seek_offset(duration: Optional[float]) -> float:
    """Seek offset for a clip of the given duration (clamped to 0 for short clips)."""
    if not duration or duration <= SEEK_OFFSET_SECONDS:
        return 0.0
    return SEEK_OFFSET_SECONDS


def probe_duration(path: str) -> Optional[float]:
    try:
        probe = ffmpeg.probe(path)
    except ffmpeg.Error as e:
        stderr = e.stderr.decode(errors="ignore") if e.stderr else str(e)
        raise ThumbnailError(f"Failed to generate thumbnail: could not load video ({stderr.strip()})") from e

    video_stream = next((s for s in probe.get("streams", []) if s.get("codec_type") == "video"), None)
    if video_stream is None:
        raise ThumbnailError("Failed to generate thumbnail: no video stream found")

    duration = video_stream.get("duration") or probe.get("format", {}).get("duration")
    return float(duration) if duration else None


def grab_frame(path: str, offset: float) -> bytes:
    """Decode one frame at ``offset`` seconds, scaled to the thumbnail raster, as PNG bytes."""
    width, height = THUMBNAIL_SIZE
    try:
        out, _ = (
            ffmpeg
            .input(path, ss=offset)
            .filter("scale", width, height)
            .output("pipe:", vframes=1, format="image2", vcodec="png")
            .run(capture_stdout=True, capture_stderr=True)
        )
    except ffmpeg.Error as e:
        stderr = e.stderr.decode(errors="ignore") if e.stderr else str(e)
        raise ThumbnailError(f"Failed to generate thumbnail: could not decode video ({stderr.strip()})") from e
    return out


def encode_jpeg(frame: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(frame)) as img:
            if img.mode != "RGB":
                img = img.convert("RGB")
            if img.size != THUMBNAIL_SIZE:
                img = img.resize(THUMBNAIL_SIZE, Image.Resampling.LANCZOS)
            output = io.BytesIO()
            img.save(output, format="JPEG", quality=JPEG_QUALITY)
            return output.getvalue()
    except (OSError, ValueError) as e:
        raise ThumbnailError(f"Failed to generate thumbnail: {e}") from e


def _thumbnail_from_path(path: str) -> bytes:
    offset = pick_seek_offset(probe_duration(path))
    frame = grab_frame(path, offset)
    if not frame and offset > 0:
        # Reported duration can overshoot the last decodable frame
        logger.info(f"No frame at {offset}s in {path}, retrying at the first frame")
        frame = grab_frame(path, 0.0)
    if not frame:
        raise ThumbnailError("Failed to generate thumbnail: no frame decoded")
    return encode_jpeg(frame)


def _spool_to_tempfile(stream: BinaryIO, suffix: str) -> str:
    fd, path = tempfile.mkstemp(suffix=suffix)
    with os.fdopen(fd, "wb") as tmp:
        shutil.copyfileobj(stream, tmp)
    return path


async def generate_thumbnail(stream: BinaryIO, filename: str = "video.mp4") -> bytes:
    """
    Produce a JPEG poster for the video in ``stream``.
    The stream is rewound afterwards so the caller can upload it.
    Raises ThumbnailError if the video cannot be loaded or decoded.
    """
    suffix = os.path.splitext(filename)[1] or ".mp4"
    start = stream.tell()
    path = None
    try:
        path = await asyncio.to_thread(_spool_to_tempfile, stream, suffix)
        thumbnail = await asyncio.to_thread(_thumbnail_from_path, path)
    except OSError as e:
        raise ThumbnailError(f"Failed to generate thumbnail: {e}") from e
    finally:
        stream.seek(start)
        if path and os.path.exists(path):
            os.remove(path)

    logger.info(f"Generated {len(thumbnail)} byte thumbnail for {filename}")
    return thumbnail
