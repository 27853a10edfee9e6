"""
DocScrub Image Recompressor Module

Re-encodes JPEG and PNG media at a configured quality and keeps the new
bytes only when they are strictly smaller. Entry names and formats never
change, so no relationship or content type needs rewriting.

Images are encoded in parallel; results are merged back into the package
from the calling thread once every job has finished.
"""

import io
import logging
import posixpath
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from PIL import Image

from errors import CodecFailure
from package_model import MEDIA_PREFIX, DocxPackage
from results import StageResult, StageStatus

logger = logging.getLogger(__name__)

STAGE = "images"

DEFAULT_IMAGE_QUALITY = 80

# Extension -> Pillow format
RECOMPRESSIBLE_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
}

_CODEC_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    if img.mode not in ("RGB", "L", "CMYK"):
        img = img.convert("RGB")
    buf = io.BytesIO()
    save_kwargs = {"quality": quality, "optimize": True}
    icc_profile = img.info.get("icc_profile")
    if icc_profile:
        save_kwargs["icc_profile"] = icc_profile
    img.save(buf, format="JPEG", **save_kwargs)
    return buf.getvalue()


def _encode_png(img: Image.Image, quality: int) -> bytes:
    if quality < 100 and img.mode not in ("P", "1"):
        # Lossy: reduce to a palette sized by quality
        colors = max(2, min(256, round(256 * quality / 100)))
        if _has_alpha(img):
            img = img.convert("RGBA").quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
        else:
            img = img.convert("RGB").quantize(colors=colors, method=Image.Quantize.MEDIANCUT)
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True, compress_level=9)
    return buf.getvalue()


def recompress_image(data: bytes, image_format: str, quality: int, path: str = "<image>") -> bytes:
    """Decode and re-encode one image. Raises CodecFailure on any codec error."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if image_format == "JPEG":
                return _encode_jpeg(img, quality)
            return _encode_png(img, quality)
    except _CODEC_ERRORS as e:
        raise CodecFailure(path, str(e)) from e


class ImageRecompressor:
    """Recompresses raster media entries of a package."""

    def __init__(self, quality: int = DEFAULT_IMAGE_QUALITY, max_workers: Optional[int] = None):
        if not 1 <= quality <= 100:
            raise ValueError(f"Image quality must be between 1 and 100, got {quality}")
        self.quality = quality
        self.max_workers = max_workers

    def run(self, package: DocxPackage) -> StageResult:
        jobs = [
            (path, data, RECOMPRESSIBLE_FORMATS[posixpath.splitext(path)[1].lower()])
            for path, data in package.entries_under(MEDIA_PREFIX)
            if posixpath.splitext(path)[1].lower() in RECOMPRESSIBLE_FORMATS
        ]
        if not jobs:
            return StageResult.skipped(STAGE, "no JPEG or PNG media found")

        logger.info("Re-compressing %d image(s) with quality level %d", len(jobs), self.quality)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            outcomes = list(executor.map(self._compress_one, jobs))

        result = StageResult(stage=STAGE)
        for (path, data, _), (new_data, error) in zip(jobs, outcomes):
            if error is not None:
                logger.warning("Could not process %s: %s", path, error.detail)
                result.warnings.append(str(error))
                continue
            if new_data is None:
                continue
            package.put(path, new_data)
            result.replaced.append(path)
            result.bytes_saved += len(data) - len(new_data)
            logger.info("Compressing %s (%.0fKB -> %.0fKB)",
                        posixpath.basename(path), len(data) / 1024, len(new_data) / 1024)

        if result.replaced:
            result.status = StageStatus.OK
        else:
            result.reason = "no image got smaller"
        return result

    def _compress_one(self, job) -> tuple[Optional[bytes], Optional[CodecFailure]]:
        """Return (smaller bytes or None, error or None) for one image."""
        path, data, image_format = job
        try:
            new_data = recompress_image(data, image_format, self.quality, path)
        except CodecFailure as e:
            return None, e
        if len(new_data) < len(data):
            return new_data, None
        return None, None
