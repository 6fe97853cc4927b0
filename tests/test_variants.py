import io

import pytest
from PIL import Image

from assetsme.core.errors import ConfigurationError, InputError, ProcessingError, VariantRequestError
from assetsme.services.variants import (
    VariantConfig,
    VariantGenerator,
    VariantSize,
    build_variant_filename,
    encode_format_for,
    fit_within_box,
    generate_variant,
    resolve_variant_size,
    resolve_variant_sizes,
)
from conftest import MemoryStorageAdapter, make_image

SMALL = VariantSize(200, 300)

CONFIG = VariantConfig(
    defaults={"small": SMALL, "medium": VariantSize(500, 500)},
    max_width=4000,
    max_height=4000,
)


def _resolve(param, default=SMALL):
    return resolve_variant_size(param, "small", default=default, max_width=4000, max_height=4000)


@pytest.mark.parametrize("param", [None, "", "   ", "0", "false", "OFF"])
def test_unrequested_or_disabled_values_resolve_to_none(param) -> None:
    assert _resolve(param) is None


def test_one_selects_configured_default() -> None:
    assert _resolve("1") == SMALL


def test_explicit_dimensions_are_parsed_case_insensitively() -> None:
    assert _resolve("300x200") == VariantSize(300, 200)
    assert _resolve(" 640X480 ") == VariantSize(640, 480)


def test_one_without_default_is_a_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="The small variant is not configured."):
        _resolve("1", default=None)


@pytest.mark.parametrize(
    "param, message",
    [
        ("abc", 'The small parameter must be "1" or in the format WIDTHxHEIGHT.'),
        ("100x", 'The small parameter must be "1" or in the format WIDTHxHEIGHT.'),
        ("-1x100", 'The small parameter must be "1" or in the format WIDTHxHEIGHT.'),
        ("0x100", "The small parameter must define width and height greater than zero."),
        ("5000x10", "The small parameter exceeds the maximum dimensions of 4000x4000."),
    ],
)
def test_invalid_dimensions_are_input_errors(param, message) -> None:
    with pytest.raises(InputError) as excinfo:
        _resolve(param)
    assert excinfo.value.message == message


def test_resolve_variant_sizes_covers_every_configured_key() -> None:
    resolved = resolve_variant_sizes({"small": "1", "large": "800x600"}, CONFIG)
    assert resolved == {"small": SMALL, "medium": None, "large": VariantSize(800, 600)}


def test_resolve_variant_sizes_collects_all_errors() -> None:
    with pytest.raises(VariantRequestError) as excinfo:
        resolve_variant_sizes({"small": "abc", "medium": "0x0", "large": "10x10"}, CONFIG)

    error = excinfo.value
    assert set(error.errors) == {"small", "medium"}
    assert error.status_code == 422
    assert error.details["errors"]["small"] == ['The small parameter must be "1" or in the format WIDTHxHEIGHT.']


def test_missing_default_makes_the_whole_request_a_server_error() -> None:
    with pytest.raises(VariantRequestError) as excinfo:
        resolve_variant_sizes({"small": "abc", "large": "1"}, CONFIG)
    assert excinfo.value.status_code == 500
    assert isinstance(excinfo.value.errors["large"], ConfigurationError)


def test_build_variant_filename() -> None:
    assert build_variant_filename("My Photo!.JPG", "small") == "my-photo--small.jpg"
    assert build_variant_filename("cat-20260102030405678901.png", "large") == "cat-20260102030405678901--large.png"
    assert build_variant_filename("README", "medium") == "readme--medium"


def test_fit_within_box_preserves_aspect_ratio() -> None:
    box = VariantSize(500, 500)
    assert fit_within_box((2000, 1000), box) == (500, 250)
    assert fit_within_box((1000, 2000), box) == (250, 500)
    assert fit_within_box((100, 100), box) == (500, 500)
    assert fit_within_box((100, 100), box, allow_upscale=False) == (100, 100)
    assert fit_within_box((10000, 1), box) == (500, 1)


def test_encode_format_for() -> None:
    assert encode_format_for("JPG") == "JPEG"
    assert encode_format_for("png") == "PNG"
    assert encode_format_for("") == "JPEG"
    with pytest.raises(ProcessingError):
        encode_format_for("exe")


def test_generate_variant_downscales_into_box() -> None:
    encoded, produced = generate_variant(make_image(2000, 1000), 500, 500, "png")

    assert produced == (500, 250)
    with Image.open(io.BytesIO(encoded)) as image:
        assert image.format == "PNG"
        assert image.size == (500, 250)


def test_generate_variant_upscales_small_sources() -> None:
    _, produced = generate_variant(make_image(100, 100), 500, 500, "png")
    assert produced == (500, 500)


def test_generate_variant_flattens_alpha_for_jpeg() -> None:
    encoded, _ = generate_variant(make_image(64, 64, "PNG", mode="RGBA"), 32, 32, "jpg")
    with Image.open(io.BytesIO(encoded)) as image:
        assert image.format == "JPEG"
        assert image.mode == "RGB"


def test_generate_variant_rejects_undecodable_input() -> None:
    with pytest.raises(ProcessingError):
        generate_variant(b"\x89PNG\r\n\x1a\nnot really", 100, 100, "png")


def test_generator_writes_variants_next_to_original() -> None:
    adapter = MemoryStorageAdapter()
    generator = VariantGenerator(adapter)
    written: list[str] = []

    result = generator.generate_variants(
        make_image(400, 300),
        "photos",
        "cat-20260102030405678901.png",
        {"small": SMALL, "medium": None, "large": VariantSize(800, 800)},
        written=written,
    )

    assert written == [
        "photos/cat-20260102030405678901--small.png",
        "photos/cat-20260102030405678901--large.png",
    ]
    assert set(result.sizes) == {"small", "large"}
    assert result.sizes["small"] == "http://assets.test/photos/cat-20260102030405678901--small.png"
    assert result.metadata["small"] == {
        "path": "photos/cat-20260102030405678901--small.png",
        "width": 200,
        "height": 150,
    }
    assert result.metadata["large"]["width"] == 800
    assert adapter.content_types["photos/cat-20260102030405678901--small.png"] == "image/png"
