import numpy as np
import pytest
from PIL import Image

from bgremoval.core.errors import BadRequest, DecodeError
from bgremoval.models.domain import RGBColor
from bgremoval.services.background_removal import (
    BackgroundRemovalService,
    clear_matching_pixels,
)

WHITE = RGBColor(255, 255, 255)


@pytest.fixture
def service(codec) -> BackgroundRemovalService:
    return BackgroundRemovalService(codec=codec)


def _alpha_of_single_pixel(service, read_png, make_image, color, target, tolerance):
    out = service.remove_background(make_image(1, 1, color), target, tolerance)
    return read_png(out).getpixel((0, 0))[3]


class TestExactMatch:
    def test_matching_pixel_becomes_transparent(self, service, read_png, make_image):
        assert _alpha_of_single_pixel(service, read_png, make_image, (255, 255, 255, 255), WHITE, 0) == 0

    @pytest.mark.parametrize(
        "color",
        [(254, 255, 255, 255), (255, 254, 255, 255), (255, 255, 254, 255)],
    )
    def test_off_by_one_keeps_full_alpha(self, service, read_png, make_image, color):
        assert _alpha_of_single_pixel(service, read_png, make_image, color, WHITE, 0) == 255

    def test_only_matching_pixels_change(self, service, read_png, to_bytes):
        img = Image.new("RGBA", (200, 200), (255, 255, 255, 255))
        img.paste((255, 0, 0, 255), (75, 75, 125, 125))

        out = read_png(service.remove_background(to_bytes(img), WHITE, 0))
        alpha = np.asarray(out)[:, :, 3]

        assert alpha[0, 0] == 0
        assert alpha[100, 100] == 255
        assert int((alpha == 255).sum()) == 50 * 50
        assert np.asarray(out)[100, 100, :3].tolist() == [255, 0, 0]


class TestTolerance:
    TARGET = RGBColor(100, 100, 100)

    @pytest.mark.parametrize("color", [(105, 100, 100, 255), (103, 104, 100, 255), (100, 97, 96, 255)])
    def test_distance_equal_to_tolerance_is_removed(self, service, read_png, make_image, color):
        assert _alpha_of_single_pixel(service, read_png, make_image, color, self.TARGET, 5) == 0

    @pytest.mark.parametrize("color", [(106, 100, 100, 255), (103, 105, 100, 255), (100, 96, 96, 255)])
    def test_distance_beyond_tolerance_is_kept(self, service, read_png, make_image, color):
        assert _alpha_of_single_pixel(service, read_png, make_image, color, self.TARGET, 5) == 255

    def test_max_tolerance_removes_everything(self, service, read_png, to_bytes):
        img = Image.new("RGB", (2, 1))
        img.putpixel((0, 0), (0, 0, 0))
        img.putpixel((1, 0), (255, 255, 255))
        out = read_png(service.remove_background(to_bytes(img), RGBColor(128, 128, 128), 255))
        assert [out.getpixel((x, 0))[3] for x in range(2)] == [0, 0]


def test_unmatched_pixels_keep_their_alpha(codec, make_image):
    buffer = codec.decode(make_image(2, 2, (10, 20, 30, 40)))
    removed = clear_matching_pixels(buffer, WHITE, 0)
    assert removed == 0
    assert buffer.grid()[:, :, 3].tolist() == [[40, 40], [40, 40]]


def test_clear_matching_pixels_counts(codec, to_bytes):
    img = Image.new("RGB", (4, 1), (255, 255, 255))
    img.putpixel((1, 0), (0, 0, 0))
    buffer = codec.decode(to_bytes(img))
    assert clear_matching_pixels(buffer, WHITE, 0) == 3


def test_round_trip_has_alpha_and_same_size(service, codec, make_image):
    source = make_image(37, 21, (255, 255, 255), mode="RGB", fmt="JPEG")
    info = codec.describe(service.remove_background(source, WHITE, 0))
    assert info.has_alpha is True
    assert info.format == "PNG"
    assert (info.width, info.height) == (37, 21)


def test_rejects_undecodable_input(service):
    with pytest.raises(DecodeError):
        service.remove_background(b"invalid image data", WHITE, 0)


@pytest.mark.parametrize("tolerance", [-1, 256, 1.5])
def test_rejects_out_of_range_tolerance(service, make_image, tolerance):
    with pytest.raises(BadRequest):
        service.remove_background(make_image(1, 1), WHITE, tolerance)
