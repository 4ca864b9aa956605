"""
Output Sanitization Tests.

Strings, species names, URLs against the host allow-list, coordinates and
reference image lists.
"""

import math

import pytest

from utils.sanitization import (
    MAX_REFERENCE_IMAGES,
    MAX_URL_LENGTH,
    is_valid_coordinate,
    round_coordinate,
    sanitize_reference_images,
    sanitize_species_name,
    sanitize_string,
    sanitize_url,
)


class TestSanitizeString:
    def test_strips_control_characters(self):
        assert sanitize_string("Fruit\x00 fly\x07\n") == "Fruit fly"

    def test_truncates(self):
        assert sanitize_string("a" * 50, max_length=10) == "a" * 10

    def test_empty_and_none(self):
        assert sanitize_string(None) == ""
        assert sanitize_string("") == ""

    @pytest.mark.parametrize(
        "value",
        ["  padded  ", "tab\tinside", "x" * 9 + "   y", "\x1bescape\x7f", "plain"],
    )
    def test_idempotent(self, value):
        once = sanitize_string(value, max_length=10)
        assert sanitize_string(once, max_length=10) == once


class TestSanitizeSpeciesName:
    def test_keeps_allowed_punctuation(self):
        assert sanitize_species_name("Bactrocera tryoni (Froggatt, 1897)") == (
            "Bactrocera tryoni (Froggatt, 1897)"
        )

    def test_removes_markup(self):
        assert sanitize_species_name("<script>alert(1)</script>Fly") == "scriptalert(1)scriptFly"

    def test_caps_length(self):
        assert len(sanitize_species_name("a" * 500)) == 200


class TestSanitizeUrl:
    def test_exact_host_allowed(self):
        url = "https://inaturalist.org/photos/1/medium.jpg"
        assert sanitize_url(url) == url

    def test_subdomain_allowed(self):
        url = "https://static.inaturalist.org/photos/1/medium.jpg"
        assert sanitize_url(url) == url

    def test_suffix_lookalike_host_rejected(self):
        assert sanitize_url("https://notinaturalist.org/photo.jpg") is None

    def test_allowed_name_in_path_rejected(self):
        assert sanitize_url("https://evil.example/inaturalist.org/photo.jpg") is None

    def test_backslash_before_userinfo_rejected(self):
        # A browser resolves this to evil.example, urlsplit to upload.wikimedia.org.
        assert sanitize_url("https://evil.example\\@upload.wikimedia.org/x.jpg") is None
        assert sanitize_url("https://upload.wikimedia.org\\x.jpg") is None

    def test_userinfo_rejected(self):
        assert sanitize_url("https://evil.example@upload.wikimedia.org/x.jpg") is None
        assert sanitize_url("https://user:pw@upload.wikimedia.org/x.jpg") is None
        assert sanitize_url("https://@upload.wikimedia.org/x.jpg") is None

    def test_whitespace_and_control_characters_rejected(self):
        assert sanitize_url("https://upload.wikimedia.org/a b.jpg") is None
        assert sanitize_url(" https://upload.wikimedia.org/a.jpg") is None
        assert sanitize_url("https://upload.wikimedia.org/a.jpg\n") is None
        assert sanitize_url("https://upload.wiki\tmedia.org/a.jpg") is None
        assert sanitize_url("https://upload.wikimedia.org/a\x00.jpg") is None

    def test_non_http_scheme_rejected(self):
        assert sanitize_url("javascript:alert(1)") is None
        assert sanitize_url("ftp://upload.wikimedia.org/a.jpg") is None

    def test_length_limit(self):
        base = "https://upload.wikimedia.org/"
        ok = base + "a" * (MAX_URL_LENGTH - len(base))
        assert sanitize_url(ok) == ok
        assert sanitize_url(ok + "a") is None

    def test_garbage_input(self):
        assert sanitize_url(None) is None
        assert sanitize_url(42) is None
        assert sanitize_url("http://[::1") is None

    def test_custom_allow_list(self):
        assert sanitize_url("https://images.example.org/a.jpg", ("example.org",))
        assert sanitize_url("https://inaturalist.org/a.jpg", ("example.org",)) is None


class TestCoordinates:
    def test_round_to_three_decimals(self):
        assert round_coordinate(-36.848461) == -36.848
        assert round_coordinate(174.763336) == 174.763

    def test_zero_is_valid(self):
        assert is_valid_coordinate(0.0)

    def test_invalid_values(self):
        assert not is_valid_coordinate(True)
        assert not is_valid_coordinate(math.nan)
        assert not is_valid_coordinate(math.inf)
        assert not is_valid_coordinate("12.5")
        assert not is_valid_coordinate(None)


class TestSanitizeReferenceImages:
    def test_drops_disallowed_urls(self):
        images = [
            {"url": "https://inaturalist.org/a.jpg", "description": "ok", "source": "iNaturalist"},
            {"url": "https://evil.example/b.jpg", "description": "bad"},
            {"url": "", "description": "empty"},
            "not a dict",
        ]
        assert sanitize_reference_images(images) == [
            {"url": "https://inaturalist.org/a.jpg", "description": "ok", "source": "iNaturalist"}
        ]

    def test_caps_entries(self):
        images = [{"url": f"https://inaturalist.org/{i}.jpg", "description": ""} for i in range(9)]
        assert len(sanitize_reference_images(images)) == MAX_REFERENCE_IMAGES

    def test_truncates_description(self):
        images = [{"url": "https://inaturalist.org/a.jpg", "description": "d" * 400}]
        assert len(sanitize_reference_images(images)[0]["description"]) == 300

    def test_non_list_input(self):
        assert sanitize_reference_images(None) == []
        assert sanitize_reference_images({"url": "https://inaturalist.org/a.jpg"}) == []
