"""
Image transform pipeline.

process() opens an encoded image, runs it through STAGES in order and
re-encodes the result with every piece of embedded metadata removed.

Stages:
  force_resize    – shrink to 99.5% and scale back, re-sampling every pixel
  blur            – Gaussian blur at blur_sigma
  noise           – library Gaussian noise or manual per-pixel uniform noise
  modulate        – random +-1% brightness and saturation
  posterize       – quantize each channel to posterize_levels levels
  median          – median filter (odd sizes >= 3 only)
  rotate          – small random rotation, canvas size unchanged
  hue             – small random hue shift
  sharpen         – unsharp mask

Every stage takes and returns a Pillow image. Only the manual noise stage
drops to a raw PixelBuffer, and it falls back to its input image if anything
in that detour fails.
"""

import io
import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageEnhance, ImageFilter, ImageOps, UnidentifiedImageError

from errors import MetadataError, ProcessingError, StageError
from options import NoiseStrategy, PipelineConfig, resolve_config

log = logging.getLogger(__name__)

RESIZE_RATIO = 0.995
MIN_RESIZE_DIMENSION = 10
MODULATE_RANGE = (0.99, 1.01)
QUALITY_SPREAD = 5
QUALITY_BOUNDS = (70, 95)
PNG_COMPRESS_LEVEL = 9
OUTPUT_DPI = (72, 72)

FORMATS = {
    "jpeg": ("JPEG", "image/jpeg", "jpg"),
    "png": ("PNG", "image/png", "png"),
}


@dataclass(frozen=True)
class PixelBuffer:
    """Raw 8-bit RGB samples, shape (height, width, 3)."""

    data: np.ndarray
    width: int
    height: int


@dataclass(frozen=True)
class PipelineResult:
    data: bytes
    mime_type: str
    extension: str
    quality: Optional[int]
    width: int
    height: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def open_image(data: bytes) -> Image.Image:
    """Decode ``data`` into an RGB or RGBA image."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
        raise ProcessingError(f"Unable to read image: {exc}") from exc

    has_alpha = img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )
    target = "RGBA" if has_alpha else "RGB"
    if img.mode != target:
        img = img.convert(target)
    return img


def read_dimensions(img: Image.Image) -> Tuple[int, int]:
    width, height = getattr(img, "size", (0, 0))
    if not width or not height:
        raise MetadataError("Image has no readable width/height")
    return width, height


def _map_rgb(img: Image.Image, fn: Callable[[Image.Image], Image.Image]) -> Image.Image:
    """Apply ``fn`` to the colour bands only, keeping any alpha band as is."""
    if img.mode != "RGBA":
        return fn(img)
    alpha = img.getchannel("A")
    out = fn(img.convert("RGB")).convert("RGBA")
    out.putalpha(alpha)
    return out


def to_pixel_buffer(img: Image.Image) -> PixelBuffer:
    rgb = img.convert("RGB")
    return PixelBuffer(np.asarray(rgb, dtype=np.uint8), rgb.width, rgb.height)


def from_pixel_buffer(buffer: PixelBuffer) -> Image.Image:
    expected = (buffer.height, buffer.width, 3)
    if buffer.data.shape != expected or buffer.data.dtype != np.uint8:
        raise StageError(
            "noise",
            f"pixel buffer has shape {buffer.data.shape} {buffer.data.dtype}, "
            f"expected {expected} uint8",
        )
    return Image.fromarray(np.ascontiguousarray(buffer.data))


def choose_quality(config: PipelineConfig) -> int:
    if not config.vary_quality:
        return config.base_jpeg_quality
    quality = random.randint(
        config.base_jpeg_quality - QUALITY_SPREAD,
        config.base_jpeg_quality + QUALITY_SPREAD,
    )
    low, high = QUALITY_BOUNDS
    return max(low, min(high, quality))


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def force_resize(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if not config.force_resize:
        return img
    try:
        width, height = read_dimensions(img)
    except MetadataError as exc:
        log.warning("Skipping resize: %s", exc)
        return img

    log.info("Applying resize...")
    temp = (
        max(MIN_RESIZE_DIMENSION, int(width * RESIZE_RATIO)),
        max(MIN_RESIZE_DIMENSION, int(height * RESIZE_RATIO)),
    )
    shrunk = ImageOps.contain(img, temp, Image.LANCZOS)
    return shrunk.resize((width, height), Image.LANCZOS)


def blur(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if config.blur_sigma <= 0:
        return img
    log.info("Applying blur (sigma: %s)...", config.blur_sigma)
    return img.filter(ImageFilter.GaussianBlur(radius=config.blur_sigma))


def library_noise(img: Image.Image, sigma: float) -> Image.Image:
    """Add zero-mean Gaussian grain, drawn independently per colour band."""

    def add_grain(rgb):
        bands = [
            ImageChops.add(band, Image.effect_noise(rgb.size, sigma), scale=1.0, offset=-128)
            for band in rgb.split()
        ]
        return Image.merge("RGB", bands)

    return _map_rgb(img, add_grain)


def manual_noise(img: Image.Image, amount: float) -> Image.Image:
    """Add uniform noise in [-amount, +amount] to every channel byte.

    Falls back to ``img`` unchanged if the raw round trip fails.
    """
    spread = int(amount)
    if spread < 1:
        log.info("Manual noise amount %s is below one level, skipping.", amount)
        return img
    try:
        buffer = to_pixel_buffer(img)
        rng = np.random.default_rng()
        noise = rng.integers(-spread, spread, size=buffer.data.shape, endpoint=True)
        noisy = np.clip(buffer.data.astype(np.int16) + noise, 0, 255).astype(np.uint8)
        out = from_pixel_buffer(PixelBuffer(noisy, buffer.width, buffer.height))
        if img.mode == "RGBA":
            out = out.convert("RGBA")
            out.putalpha(img.getchannel("A"))
        return out
    except Exception as exc:  # pylint: disable=broad-except
        log.warning("Manual noise failed, keeping pre-noise image: %s", exc)
        return img


def noise(img: Image.Image, config: PipelineConfig) -> Image.Image:
    strategy = config.noise_strategy
    if strategy is NoiseStrategy.LIBRARY and config.noise_sigma > 0:
        log.info("Applying noise (sigma: %s)...", config.noise_sigma)
        return library_noise(img, config.noise_sigma)
    if strategy is NoiseStrategy.MANUAL_PIXEL and config.manual_noise_amount > 0:
        log.info("Applying manual noise (amount: %s)...", config.manual_noise_amount)
        return manual_noise(img, config.manual_noise_amount)
    return img


def modulate(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if not config.modulate_color:
        return img
    brightness = random.uniform(*MODULATE_RANGE)
    saturation = random.uniform(*MODULATE_RANGE)
    log.info("Applying modulate (brightness: %.4f, saturation: %.4f)...", brightness, saturation)

    def shift(rgb):
        rgb = ImageEnhance.Brightness(rgb).enhance(brightness)
        return ImageEnhance.Color(rgb).enhance(saturation)

    return _map_rgb(img, shift)


def posterize_table(levels: int):
    step = 255.0 / (levels - 1)
    return [int(round(round(value / step) * step)) for value in range(256)]


def posterize(img: Image.Image, config: PipelineConfig) -> Image.Image:
    levels = config.posterize_levels
    if levels <= 1 or levels >= 256:
        return img
    log.info("Applying posterize (levels: %d)...", levels)
    table = posterize_table(levels) * 3
    return _map_rgb(img, lambda rgb: rgb.point(table))


def median(img: Image.Image, config: PipelineConfig) -> Image.Image:
    size = config.median_filter_size
    if size == 0:
        return img
    if size < 3 or size % 2 == 0:
        log.warning("Median filter size (%d) is invalid, must be odd and >= 3. Skipping.", size)
        return img
    log.info("Applying median filter (size: %d)...", size)
    return img.filter(ImageFilter.MedianFilter(size))


def rotate(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if not config.rotate or config.max_rotation_degrees <= 0:
        return img
    angle = random.uniform(-config.max_rotation_degrees, config.max_rotation_degrees)
    log.info("Applying rotation (angle: %.3f)...", angle)
    return img.rotate(angle, resample=Image.BICUBIC, expand=False, fillcolor=img.getpixel((0, 0)))


def hue(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if not config.shift_hue or config.max_hue_shift <= 0:
        return img
    offset = random.randint(-config.max_hue_shift, config.max_hue_shift)
    log.info("Applying hue shift (offset: %d)...", offset)

    def shift(rgb):
        h, s, v = rgb.convert("HSV").split()
        h = h.point(lambda x: (x + offset) % 256)
        return Image.merge("HSV", (h, s, v)).convert("RGB")

    return _map_rgb(img, shift)


def sharpen(img: Image.Image, config: PipelineConfig) -> Image.Image:
    if config.sharpen_amount <= 0:
        return img
    log.info("Applying sharpen (amount: %s)...", config.sharpen_amount)
    mask = ImageFilter.UnsharpMask(radius=2, percent=int(config.sharpen_amount * 100), threshold=3)
    return _map_rgb(img, lambda rgb: rgb.filter(mask))


STAGES = (
    ("force_resize", force_resize),
    ("blur", blur),
    ("noise", noise),
    ("modulate", modulate),
    ("posterize", posterize),
    ("median", median),
    ("rotate", rotate),
    ("hue", hue),
    ("sharpen", sharpen),
)


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def scrub_metadata(img: Image.Image) -> Image.Image:
    """Return a copy with no EXIF/ICC/XMP/text entries attached."""
    clean = img.copy()
    clean.info = {}
    return clean


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode != "RGBA":
        return img
    background = Image.new("RGB", img.size, (255, 255, 255))
    background.paste(img, mask=img.getchannel("A"))
    return background


def encode(img: Image.Image, config: PipelineConfig) -> PipelineResult:
    target = config.target_format
    if target not in FORMATS:
        log.warning("Output format '%s' not supported, using JPEG.", target)
        target = "jpeg"
        quality = config.base_jpeg_quality
    elif target == "jpeg":
        quality = choose_quality(config)
    else:
        quality = None

    pil_format, mime_type, extension = FORMATS[target]
    img = scrub_metadata(img)
    buf = io.BytesIO()
    if pil_format == "JPEG":
        log.info("Converting to JPEG (quality: %d)...", quality)
        img = _flatten(img)
        img.save(buf, format="JPEG", quality=quality, optimize=True, progressive=True, dpi=OUTPUT_DPI)
    else:
        log.info("Converting to PNG...")
        img.save(buf, format="PNG", compress_level=PNG_COMPRESS_LEVEL, optimize=True, dpi=OUTPUT_DPI)

    return PipelineResult(
        data=buf.getvalue(),
        mime_type=mime_type,
        extension=extension,
        quality=quality,
        width=img.width,
        height=img.height,
    )


def process(image: bytes, options=None) -> PipelineResult:
    """Run the full pipeline on an encoded image.

    Args:
        image: encoded image bytes (JPEG, PNG, ...)
        options: partial mapping of options, or a PipelineConfig

    Raises:
        ConfigError: if an option has the wrong type
        ProcessingError: if any stage other than manual noise fails
    """
    config = resolve_config(options)
    log.info("Starting processing with config: %s", config)

    img = open_image(image)
    for name, stage in STAGES:
        try:
            img = stage(img, config)
        except Exception as exc:
            raise ProcessingError(f"{name}: {exc}") from exc

    try:
        result = encode(img, config)
    except Exception as exc:
        raise ProcessingError(f"encode: {exc}") from exc

    log.info("Processing complete (%s, %d bytes).", result.mime_type, len(result.data))
    return result
