"""Tests for boardalign.geometry.primitives module."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from boardalign.geometry import Length, LengthUnit, Location, convert_value


class TestLengthUnit:
    """Tests for LengthUnit parsing and conversion factors."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("mm", LengthUnit.MILLIMETERS),
            ("MM", LengthUnit.MILLIMETERS),
            ("millimeters", LengthUnit.MILLIMETERS),
            ("in", LengthUnit.INCHES),
            (" inches ", LengthUnit.INCHES),
            ("mil", LengthUnit.MILS),
            ("um", LengthUnit.MICRONS),
        ],
    )
    def test_parse(self, text: str, expected: LengthUnit) -> None:
        assert LengthUnit.parse(text) is expected

    def test_parse_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown length unit"):
            LengthUnit.parse("furlong")

    def test_convert_value(self) -> None:
        assert convert_value(1.0, LengthUnit.INCHES, LengthUnit.MILLIMETERS) == 25.4
        inches = convert_value(1000.0, LengthUnit.MILS, LengthUnit.INCHES)
        assert inches == pytest.approx(1.0)
        assert convert_value(2.5, LengthUnit.CENTIMETERS, LengthUnit.CENTIMETERS) == 2.5


class TestLength:
    def test_convert_to_units(self) -> None:
        length = Length(value=5.0, units=LengthUnit.MILLIMETERS)
        converted = length.convert_to_units(LengthUnit.MICRONS)
        assert converted.value == pytest.approx(5000.0)
        assert converted.units is LengthUnit.MICRONS

    def test_str(self) -> None:
        assert str(Length(value=5.0)) == "5mm"


class TestLocation:
    """Tests for the Location value type."""

    def test_is_immutable(self) -> None:
        loc = Location.mm(1.0, 2.0)
        with pytest.raises(ValidationError):
            loc.x = 5.0  # type: ignore[misc]

    def test_value_equality(self) -> None:
        assert Location.mm(1.0, 2.0, 3.0, 4.0) == Location.mm(1.0, 2.0, 3.0, 4.0)
        assert Location.mm(1.0, 2.0) != Location.mm(1.0, 2.5)

    def test_convert_to_units_keeps_rotation(self) -> None:
        loc = Location(units=LengthUnit.INCHES, x=1.0, y=2.0, z=0.5, rotation=45.0)
        mm = loc.convert_to_units(LengthUnit.MILLIMETERS)
        assert mm.x == pytest.approx(25.4)
        assert mm.y == pytest.approx(50.8)
        assert mm.z == pytest.approx(12.7)
        assert mm.rotation == 45.0

    def test_add_converts_other_units_and_keeps_rotation(self) -> None:
        a = Location.mm(10.0, 10.0, 0.0, 30.0)
        b = Location(units=LengthUnit.CENTIMETERS, x=1.0, y=2.0, rotation=90.0)
        result = a.add(b)
        assert result.to_xy() == pytest.approx((20.0, 30.0))
        assert result.rotation == 30.0
        assert result.units is LengthUnit.MILLIMETERS

    def test_subtract(self) -> None:
        result = Location.mm(10.0, 10.0, 5.0).subtract(Location.mm(1.0, 2.0, 3.0))
        assert (result.x, result.y, result.z) == (9.0, 8.0, 2.0)

    def test_add_and_subtract_with_rotation(self) -> None:
        a = Location.mm(1.0, 1.0, rotation=10.0)
        b = Location.mm(2.0, 3.0, rotation=5.0)
        assert a.add_with_rotation(b) == Location.mm(3.0, 4.0, rotation=15.0)
        assert a.subtract_with_rotation(b) == Location.mm(-1.0, -2.0, rotation=5.0)

    def test_derive_replaces_only_given_fields(self) -> None:
        loc = Location.mm(1.0, 2.0, 3.0, 4.0)
        assert loc.derive(z=0.0) == Location.mm(1.0, 2.0, 0.0, 4.0)
        assert loc.derive() == loc

    def test_invert_selected_fields(self) -> None:
        loc = Location.mm(1.0, 2.0, 3.0, 4.0)
        assert loc.invert(x=True) == Location.mm(-1.0, 2.0, 3.0, 4.0)
        assert loc.invert(y=True, rotation=True) == Location.mm(1.0, -2.0, 3.0, -4.0)
        assert loc.invert(z=True) == Location.mm(1.0, 2.0, -3.0, 4.0)

    def test_rotate_xy_about_origin(self) -> None:
        rotated = Location.mm(10.0, 0.0, rotation=7.0).rotate_xy(90.0)
        assert rotated.x == pytest.approx(0.0, abs=1e-12)
        assert rotated.y == pytest.approx(10.0)
        assert rotated.rotation == 7.0

    def test_rotate_xy_zero_returns_same(self) -> None:
        loc = Location.mm(3.0, 4.0)
        assert loc.rotate_xy(0.0) is loc

    def test_rotate_xy_center(self) -> None:
        pivot = Location.mm(10.0, 10.0)
        rotated = Location.mm(20.0, 10.0).rotate_xy_center(pivot, 180.0)
        assert rotated.x == pytest.approx(0.0, abs=1e-12)
        assert rotated.y == pytest.approx(10.0)

    def test_linear_distance_to_ignores_z(self) -> None:
        a = Location.mm(0.0, 0.0, 100.0)
        b = Location.mm(3.0, 4.0, -50.0)
        assert a.linear_distance_to(b) == 5.0

    def test_linear_distance_uses_own_units(self) -> None:
        a = Location(units=LengthUnit.CENTIMETERS)
        b = Location.mm(30.0, 40.0)
        assert a.linear_distance_to(b) == pytest.approx(5.0)

    def test_xyz_distance_to(self) -> None:
        a = Location.mm(0.0, 0.0, 0.0)
        b = Location.mm(1.0, 2.0, 2.0)
        assert a.xyz_distance_to(b) == pytest.approx(3.0)

    def test_str(self) -> None:
        assert str(Location.mm(1.0, 2.0)) == "(1.0000, 2.0000, 0.0000, 0.0000) mm"

    def test_rotation_round_trip_distance_preserved(self) -> None:
        loc = Location.mm(12.0, -5.0)
        rotated = loc.rotate_xy(33.0)
        assert math.hypot(*rotated.to_xy()) == pytest.approx(13.0)
