"""Tests for colour palettes."""

import logging

from omnitop.theme import LICH_KING, get_palette


def test_default_palette_colours():
    """Test the lich-king colours."""
    assert LICH_KING.background == "#0A001F"
    assert LICH_KING.alert == "#C41E3A"
    assert LICH_KING.bar == LICH_KING.graph
    assert LICH_KING.title == "bold #81A1C1"


def test_lookup_by_name():
    """Test palettes are looked up by name."""
    assert get_palette("lich-king") is LICH_KING


def test_unknown_theme_falls_back(caplog):
    """Test an unknown theme falls back with a warning."""
    with caplog.at_level(logging.WARNING, logger="omnitop.theme"):
        assert get_palette("solarized") is LICH_KING
    assert "unknown theme" in caplog.text
