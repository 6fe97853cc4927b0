from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from PIL import Image, ImageOps, UnidentifiedImageError

from assetsme.core.errors import AssetError, ConfigurationError, InputError, ProcessingError, VariantRequestError
from assetsme.core.settings import Settings
from assetsme.services.storage.adapter import StorageAdapter
from assetsme.services.storage.key_generator import KeyGenerator

logger = logging.getLogger(__name__)

VARIANT_SEPARATOR = "--"
DISABLED_VALUES = frozenset({"0", "false", "off"})
DEFAULT_ENCODE_FORMAT = "JPEG"

_DIMENSIONS_RE = re.compile(r"^(\d+)x(\d+)$", re.IGNORECASE)

_FORMAT_BY_EXTENSION: dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "jpe": "JPEG",
    "png": "PNG",
    "gif": "GIF",
    "webp": "WEBP",
    "avif": "AVIF",
    "bmp": "BMP",
    "tif": "TIFF",
    "tiff": "TIFF",
}

_MIME_BY_FORMAT: dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "AVIF": "image/avif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}

_SAVE_OPTIONS: dict[str, dict[str, Any]] = {
    "JPEG": {"quality": 85, "optimize": True},
    "WEBP": {"quality": 85},
    "PNG": {"optimize": True},
}


@dataclass(frozen=True, slots=True)
class VariantSize:
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class VariantConfig:
    defaults: Mapping[str, VariantSize]
    max_width: int
    max_height: int
    keys: tuple[str, ...] = ("small", "medium", "large")
    allow_upscale: bool = True

    @classmethod
    def from_settings(cls, config: Settings) -> "VariantConfig":
        return cls(
            defaults={
                key: VariantSize(width=dims.width, height=dims.height)
                for key, dims in config.variants.items()
            },
            max_width=config.max_width,
            max_height=config.max_height,
            keys=tuple(config.variant_keys),
            allow_upscale=config.allow_upscale,
        )


def resolve_variant_size(
    param: str | None,
    key: str,
    *,
    default: VariantSize | None,
    max_width: int,
    max_height: int,
) -> VariantSize | None:
    """Turn one raw query value into a concrete size, ``None`` when not requested."""
    if param is None:
        return None
    value = param.strip()
    if value == "":
        return None

    if value.lower() in DISABLED_VALUES:
        return None

    if value == "1":
        if default is None:
            raise ConfigurationError(f"The {key} variant is not configured.", details={"variant": key})
        return default

    match = _DIMENSIONS_RE.match(value)
    if not match:
        raise InputError(
            f'The {key} parameter must be "1" or in the format WIDTHxHEIGHT.',
            details={"variant": key},
        )

    width, height = int(match.group(1)), int(match.group(2))
    if width < 1 or height < 1:
        raise InputError(
            f"The {key} parameter must define width and height greater than zero.",
            details={"variant": key},
        )
    if width > max_width or height > max_height:
        raise InputError(
            f"The {key} parameter exceeds the maximum dimensions of {max_width}x{max_height}.",
            details={"variant": key, "max_width": max_width, "max_height": max_height},
        )
    return VariantSize(width=width, height=height)


def resolve_variant_sizes(
    params: Mapping[str, str | None], config: VariantConfig
) -> dict[str, VariantSize | None]:
    """Resolve every configured key, raising one error that lists all failures."""
    resolved: dict[str, VariantSize | None] = {}
    errors: dict[str, AssetError] = {}
    for key in config.keys:
        try:
            resolved[key] = resolve_variant_size(
                params.get(key),
                key,
                default=config.defaults.get(key),
                max_width=config.max_width,
                max_height=config.max_height,
            )
        except (InputError, ConfigurationError) as exc:
            errors[key] = exc
    if errors:
        raise VariantRequestError(errors)
    return resolved


def build_variant_filename(original_filename: str, suffix: str) -> str:
    stem, extension = KeyGenerator.split_filename(original_filename)
    base = KeyGenerator.slugify(stem) or "asset"
    extension = KeyGenerator.sanitize_extension(extension)
    variant_name = f"{base}{VARIANT_SEPARATOR}{suffix}"
    if not extension:
        return variant_name
    return f"{variant_name}.{extension}"


def fit_within_box(
    source_size: tuple[int, int],
    box: VariantSize,
    *,
    allow_upscale: bool = True,
) -> tuple[int, int]:
    """Largest size with the source aspect ratio that fits inside ``box``."""
    source_width, source_height = source_size
    scale = min(box.width / source_width, box.height / source_height)
    if not allow_upscale:
        scale = min(scale, 1.0)
    return (
        max(1, min(box.width, round(source_width * scale))),
        max(1, min(box.height, round(source_height * scale))),
    )


def encode_format_for(extension: str | None) -> str:
    if not extension:
        return DEFAULT_ENCODE_FORMAT
    image_format = _FORMAT_BY_EXTENSION.get(extension.lower())
    if image_format is None:
        raise ProcessingError(
            f"Cannot encode image variants as '.{extension}'.", details={"extension": extension}
        )
    return image_format


def _prepare_mode(image: Image.Image, image_format: str) -> Image.Image:
    if image_format != "JPEG" or image.mode in ("RGB", "L"):
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[3])
        return background
    return image.convert("RGB")


def generate_variant(
    source: bytes,
    width: int,
    height: int,
    extension: str | None,
    *,
    allow_upscale: bool = True,
) -> tuple[bytes, tuple[int, int]]:
    """Resize ``source`` to fit a ``width`` x ``height`` box and encode it.

    Returns the encoded bytes and the dimensions actually produced.
    """
    image_format = encode_format_for(extension)
    try:
        with Image.open(io.BytesIO(source)) as opened:
            image = ImageOps.exif_transpose(opened)
            target = fit_within_box(image.size, VariantSize(width, height), allow_upscale=allow_upscale)
            resized = image.resize(target, Image.Resampling.LANCZOS)
            resized = _prepare_mode(resized, image_format)
            buffer = io.BytesIO()
            resized.save(buffer, format=image_format, **_SAVE_OPTIONS.get(image_format, {}))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, KeyError) as exc:
        raise ProcessingError(
            "Failed to generate image variant.", details={"error": str(exc)}
        ) from exc
    return buffer.getvalue(), target


@dataclass(slots=True)
class VariantResult:
    sizes: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, dict[str, Any]] = field(default_factory=dict)


class VariantGenerator:
    def __init__(self, adapter: StorageAdapter, *, allow_upscale: bool = True) -> None:
        self.adapter = adapter
        self.allow_upscale = allow_upscale

    def make_variant(self, source: bytes, destination_path: str, size: VariantSize) -> tuple[int, int]:
        _, extension = KeyGenerator.split_filename(destination_path)
        encoded, produced = generate_variant(
            source, size.width, size.height, extension, allow_upscale=self.allow_upscale
        )
        image_format = encode_format_for(extension)
        self.adapter.write_object(
            destination_path,
            encoded,
            content_type=_MIME_BY_FORMAT.get(image_format),
            overwrite=True,
        )
        return produced

    def generate_variants(
        self,
        source: bytes,
        folder: str | None,
        file_name: str,
        definitions: Mapping[str, VariantSize | None],
        *,
        written: list[str] | None = None,
    ) -> VariantResult:
        """Write each requested variant next to the original, in key order.

        Paths written before a failure are appended to ``written`` so callers
        can report them; nothing is rolled back here.
        """
        result = VariantResult()
        for key, size in definitions.items():
            if size is None:
                continue
            variant_path = KeyGenerator.join_key(folder, build_variant_filename(file_name, key))
            produced_width, produced_height = self.make_variant(source, variant_path, size)
            if written is not None:
                written.append(variant_path)
            result.sizes[key] = self.adapter.object_url(variant_path)
            result.metadata[key] = {
                "path": variant_path,
                "width": produced_width,
                "height": produced_height,
            }
        return result
