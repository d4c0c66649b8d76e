"""Per-file image conversion: decode, downscale guard, resize, encode."""

import base64
import io
import logging
import math
from dataclasses import dataclass

import pillow_heif
from PIL import Image, UnidentifiedImageError

from .errors import ConversionError
from .reaper import ResourceReaper
from .validation import InputFile

logger = logging.getLogger(__name__)

# Lets Pillow decode HEIC uploads and encode the "heic"/"heif" targets.
pillow_heif.register_heif_opener()

DEFAULT_MAX_PIXELS = 4000 * 4000

# Target format -> Pillow encoder name
PILLOW_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "bmp": "BMP",
    "tif": "TIFF",
    "tiff": "TIFF",
    # HEVC through pillow-heif instead of a Pillow built-in codec.
    "heic": "HEIF",
    "heif": "HEIF",
}

SPECIAL_FORMATS = {"ico", "svg"}

# Pillow encoder name -> image modes it writes without conversion
ENCODER_MODES = {
    "JPEG": ("RGB", "L", "CMYK"),
    "PNG": ("1", "L", "LA", "P", "RGB", "RGBA"),
    "WEBP": ("RGB", "RGBA"),
    "GIF": ("1", "L", "P", "RGB", "RGBA"),
    "BMP": ("1", "L", "P", "RGB", "RGBA"),
    "TIFF": ("1", "L", "LA", "P", "RGB", "RGBA", "CMYK"),
    "HEIF": ("RGB", "RGBA"),
    "ICO": ("RGB", "RGBA"),
}

ICON_SIZES = (16, 24, 32, 48, 64, 128, 256)

SVG_TEMPLATE = (
    '<svg width="{width}" height="{height}" xmlns="http://www.w3.org/2000/svg">'
    '<image href="data:{mime};base64,{payload}" width="100%" height="100%"/>'
    "</svg>"
)


@dataclass
class ConversionOptions:
    """Parameters shared by every file of a batch."""

    format: str
    quality: int | None = None
    resize: tuple[int, int] | None = None
    max_pixels: int = DEFAULT_MAX_PIXELS


@dataclass
class ConversionResult:
    """Encoded output for one input file."""

    data: bytes
    original_name: str

    def discard(self) -> None:
        self.data = b""


def is_supported_format(target_format: str) -> bool:
    return target_format in PILLOW_FORMATS or target_format in SPECIAL_FORMATS


def guard_dimensions(width: int, height: int, max_pixels: int) -> tuple[int, int]:
    """
    Return dimensions scaled down uniformly so that width * height fits
    ``max_pixels``. Never scales up.
    """
    area = width * height
    if area <= max_pixels:
        return width, height
    ratio = math.sqrt(max_pixels / area)
    return max(1, math.floor(width * ratio)), max(1, math.floor(height * ratio))


def capped_dimensions(requested: tuple[int, int], current: tuple[int, int]) -> tuple[int, int]:
    """Requested dimensions with each side capped at the current size."""
    return min(requested[0], current[0]), min(requested[1], current[1])


def _encode(image: Image.Image, pillow_format: str, **params) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=pillow_format, **params)
    return buffer.getvalue()


def _has_alpha(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


def _prepare_mode(image: Image.Image, pillow_format: str, reaper: ResourceReaper) -> Image.Image:
    """
    Return ``image`` in a mode the encoder can write.

    Unsupported modes (CMYK into PNG, 16-bit or float data, LA into JPEG)
    become RGB, or RGBA when the image carries alpha and the encoder keeps it.
    """
    accepted = ENCODER_MODES[pillow_format]
    if image.mode in accepted:
        return image
    if image.mode in ("I", "F") or image.mode.startswith("I;16"):
        image = reaper.track(image.convert("L"))
        if image.mode in accepted:
            return image
    target = "RGBA" if _has_alpha(image) and "RGBA" in accepted else "RGB"
    return reaper.track(image.convert(target))


def _to_icon(
    image: Image.Image,
    source: InputFile,
    source_format: str | None,
    transformed: bool,
    reaper: ResourceReaper,
) -> bytes:
    icon_ready = _prepare_mode(image, "ICO", reaper)
    if source_format == "PNG" and not transformed and icon_ready is image:
        png_bytes = source.data
    else:
        png_bytes = _encode(icon_ready, "PNG")

    try:
        intermediate = reaper.track(Image.open(io.BytesIO(png_bytes)))
        width, height = intermediate.size
        sizes = {(min(width, 256), min(height, 256))}
        sizes.update((size, size) for size in ICON_SIZES if size <= width and size <= height)
        return _encode(intermediate, "ICO", sizes=sorted(sizes))
    except (OSError, ValueError) as exc:
        raise ConversionError(f"ICO packing failed for {source.name}: {exc}") from exc


def _to_svg(
    image: Image.Image,
    source: InputFile,
    source_format: str | None,
    source_size: tuple[int, int],
    transformed: bool,
    reaper: ResourceReaper,
) -> bytes:
    """
    Embed the raster in a minimal SVG document.

    This does not trace anything: the document carries the decoded width and
    height and a base64 data URI of the (possibly resized) raster.
    """
    if transformed or source_format is None:
        raster, mime = _encode(_prepare_mode(image, "PNG", reaper), "PNG"), "image/png"
    else:
        raster = source.data
        mime = Image.MIME.get(source_format, f"image/{source_format.lower()}")

    document = SVG_TEMPLATE.format(
        width=source_size[0],
        height=source_size[1],
        mime=mime,
        payload=base64.b64encode(raster).decode("ascii"),
    )
    return document.encode("utf-8")


def convert_image(source: InputFile, options: ConversionOptions) -> ConversionResult:
    """
    Convert one uploaded image.

    Blocking; run it off the event loop. Every Pillow handle opened here is
    closed and the source buffer is discarded before returning, on success
    and on failure alike.
    """

    target_format = options.format
    if not is_supported_format(target_format):
        source.discard()
        raise ConversionError(f"Unsupported target format: {target_format}")

    with ResourceReaper() as reaper:
        reaper.track_buffer(source)

        try:
            image = reaper.track(Image.open(io.BytesIO(source.data)))
            image.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as exc:
            raise ConversionError(f"Failed to decode {source.name}: {exc}") from exc

        source_format = image.format
        source_size = image.size
        transformed = False

        guarded = guard_dimensions(*image.size, options.max_pixels)
        if guarded != image.size:
            logger.info(
                "Downscaling %s from %dx%d to %dx%d",
                source.name, image.width, image.height, guarded[0], guarded[1],
            )
            image = reaper.track(image.resize(guarded, Image.Resampling.LANCZOS))
            transformed = True

        if options.resize:
            target = capped_dimensions(options.resize, image.size)
            if target != image.size:
                image = reaper.track(image.resize(target, Image.Resampling.LANCZOS))
                transformed = True

        try:
            if target_format == "ico":
                data = _to_icon(image, source, source_format, transformed, reaper)
            elif target_format == "svg":
                data = _to_svg(image, source, source_format, source_size, transformed, reaper)
            else:
                pillow_format = PILLOW_FORMATS[target_format]
                image = _prepare_mode(image, pillow_format, reaper)
                params = {}
                if options.quality is not None:
                    params["quality"] = options.quality
                data = _encode(image, pillow_format, **params)
        except ConversionError:
            raise
        except (OSError, ValueError, KeyError) as exc:
            raise ConversionError(f"Failed to encode {source.name} as {target_format}: {exc}") from exc

        return ConversionResult(data=data, original_name=source.name)
