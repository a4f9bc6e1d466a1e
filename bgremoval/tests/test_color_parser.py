import pytest

from bgremoval.core.errors import InvalidColorFormat
from bgremoval.models.domain import RGBColor
from bgremoval.services.color_parser import ColorParserService


@pytest.fixture
def parser() -> ColorParserService:
    return ColorParserService()


class TestHex:
    def test_three_digit_hex_doubles_each_digit(self, parser):
        assert parser.parse_color("#FFF") == RGBColor(255, 255, 255)
        assert parser.parse_color("#f0a") == RGBColor(255, 0, 170)

    def test_six_digit_hex(self, parser):
        assert parser.parse_color("#FFFFFF") == RGBColor(255, 255, 255)
        assert parser.parse_color("#FF0000") == RGBColor(255, 0, 0)
        assert parser.parse_color("#00ff80") == RGBColor(0, 255, 128)

    def test_lowercase_and_whitespace(self, parser):
        assert parser.parse_color("  #abcdef  ") == RGBColor(171, 205, 239)

    @pytest.mark.parametrize("value", ["#FF", "#FFFF", "#FFFFFFF", "#", "#GGG", "#12345z"])
    def test_invalid_hex(self, parser, value):
        with pytest.raises(InvalidColorFormat):
            parser.parse_color(value)


class TestRgb:
    def test_space_separated(self, parser):
        assert parser.parse_color("rgb(255 255 255)") == RGBColor(255, 255, 255)

    def test_comma_separated(self, parser):
        assert parser.parse_color("rgb(255, 128, 0)") == RGBColor(255, 128, 0)
        assert parser.parse_color("rgb(1,2,3)") == RGBColor(1, 2, 3)

    def test_mixed_separators(self, parser):
        assert parser.parse_color("rgb(10 , 20,30)") == RGBColor(10, 20, 30)

    def test_rgba_alpha_is_ignored(self, parser):
        assert parser.parse_color("rgba(255,255,255,1.0)") == RGBColor(255, 255, 255)
        assert parser.parse_color("rgba(0 0 0 0)") == RGBColor(0, 0, 0)

    def test_rgba_alpha_must_still_be_numeric(self, parser):
        with pytest.raises(InvalidColorFormat):
            parser.parse_color("rgba(0, 0, 0, opaque)")

    def test_fractional_values_round_to_nearest(self, parser):
        assert parser.parse_color("rgb(10.4, 10.5, 254.5)") == RGBColor(10, 11, 255)

    def test_fewer_than_three_values(self, parser):
        with pytest.raises(InvalidColorFormat, match="at least 3"):
            parser.parse_color("rgb(255, 255)")

    def test_missing_parentheses(self, parser):
        with pytest.raises(InvalidColorFormat):
            parser.parse_color("rgb 255 255 255")

    def test_out_of_range_names_the_value(self, parser):
        with pytest.raises(InvalidColorFormat, match="g=256"):
            parser.parse_color("rgb(0, 256, 0)")

    def test_negative_channel(self, parser):
        with pytest.raises(InvalidColorFormat, match="r=-1"):
            parser.parse_color("rgb(-1, 0, 0)")

    @pytest.mark.parametrize("value", ["rgb(a, b, c)", "rgb(nan, 0, 0)", "rgb(inf, 0, 0)"])
    def test_non_numeric(self, parser, value):
        with pytest.raises(InvalidColorFormat):
            parser.parse_color(value)


class TestNamed:
    def test_named_colors(self, parser):
        assert parser.parse_color("white") == RGBColor(255, 255, 255)
        assert parser.parse_color("black") == RGBColor(0, 0, 0)
        assert parser.parse_color("red") == RGBColor(255, 0, 0)
        assert parser.parse_color("green") == RGBColor(0, 255, 0)
        assert parser.parse_color("blue") == RGBColor(0, 0, 255)

    def test_case_insensitive(self, parser):
        assert parser.parse_color("WHITE") == parser.parse_color("white") == RGBColor(255, 255, 255)
        assert parser.parse_color(" Black ") == RGBColor(0, 0, 0)

    def test_no_fuzzy_matching(self, parser):
        with pytest.raises(InvalidColorFormat):
            parser.parse_color("whit")

    def test_table_is_extensible(self):
        parser = ColorParserService(named_colors={"chroma": RGBColor(0, 177, 64)})
        assert parser.parse_color("CHROMA") == RGBColor(0, 177, 64)


class TestIsValidColor:
    @pytest.mark.parametrize("value", ["#FFF", "#FFFFFF", "rgb(255 255 255)", "white"])
    def test_valid(self, parser, value):
        assert parser.is_valid_color(value) is True

    @pytest.mark.parametrize("value", ["invalid", "#GGG", "rgb(300, 0, 0)", "", "   "])
    def test_invalid_never_raises(self, parser, value):
        assert parser.is_valid_color(value) is False
