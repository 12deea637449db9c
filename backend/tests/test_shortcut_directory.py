"""Tests for Shortcut member and group name lookups."""

import pytest
import requests
from unittest.mock import Mock, patch
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.shortcut_directory import NameCache, ShortcutDirectory


def ok(payload):
    return Mock(status_code=200, json=lambda: payload, raise_for_status=Mock())


@pytest.fixture
def directory():
    return ShortcutDirectory("token123", api_base="https://shortcut.test/api/v3/")


class TestResolveMember:
    """Test member lookups."""

    @patch("services.shortcut_directory.requests.get")
    def test_resolves_profile_name(self, mock_get, directory):
        mock_get.return_value = ok({"id": "u-1", "profile": {"name": "Alice Smith"}})

        assert directory.resolve_member("u-1") == {"id": "u-1", "displayName": "Alice Smith"}

        args, kwargs = mock_get.call_args
        assert args[0] == "https://shortcut.test/api/v3/members/u-1"
        assert kwargs["headers"]["Shortcut-Token"] == "token123"

    @patch("services.shortcut_directory.requests.get")
    def test_cached_after_first_lookup(self, mock_get, directory):
        mock_get.return_value = ok({"profile": {"name": "Alice Smith"}})

        directory.resolve_member("u-1")
        directory.resolve_member("u-1")

        assert mock_get.call_count == 1

    @patch("services.shortcut_directory.requests.get")
    def test_failure_is_unknown_and_not_cached(self, mock_get, directory):
        mock_get.side_effect = requests.exceptions.ConnectionError("down")

        assert directory.resolve_member("u-1")["displayName"] == "Unknown"
        assert len(directory.cache) == 0

        mock_get.side_effect = None
        mock_get.return_value = ok({"profile": {"name": "Alice Smith"}})
        assert directory.resolve_member("u-1")["displayName"] == "Alice Smith"

    @patch("services.shortcut_directory.requests.get")
    def test_http_error_is_unknown(self, mock_get, directory):
        response = Mock(status_code=404)
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("404")
        mock_get.return_value = response

        assert directory.resolve_member("missing")["displayName"] == "Unknown"

    @patch("services.shortcut_directory.requests.get")
    def test_empty_id_skips_request(self, mock_get, directory):
        assert directory.resolve_member("")["displayName"] == "Unknown"
        mock_get.assert_not_called()


class TestResolveGroup:
    """Test group lookups."""

    @patch("services.shortcut_directory.requests.get")
    def test_resolves_group_name(self, mock_get, directory):
        mock_get.return_value = ok({"id": "g-1", "name": "Integrations"})
        assert directory.resolve_group("g-1") == {"id": "g-1", "displayName": "Integrations"}
        assert mock_get.call_args.args[0].endswith("/groups/g-1")

    @patch("services.shortcut_directory.requests.get")
    def test_shared_cache_between_directories(self, mock_get):
        mock_get.return_value = ok({"name": "Integrations"})
        cache = NameCache()

        ShortcutDirectory("a", cache=cache).resolve_group("g-1")
        ShortcutDirectory("b", cache=cache).resolve_group("g-1")

        assert mock_get.call_count == 1

    def test_member_and_group_ids_do_not_collide(self):
        cache = NameCache()
        cache.set("member", "x", "Alice")
        cache.set("group", "x", "Platform")
        assert cache.get("member", "x") == "Alice"
        assert cache.get("group", "x") == "Platform"


class TestResolveMany:
    """Test parallel lookups."""

    @patch("services.shortcut_directory.requests.get")
    def test_resolves_each_unique_id_once(self, mock_get, directory):
        names = {"u-1": "Alice", "u-2": "Bob"}

        def fake_get(url, **kwargs):
            member_id = url.rsplit("/", 1)[-1]
            return ok({"profile": {"name": names[member_id]}})

        mock_get.side_effect = fake_get

        result = directory.resolve_many(["u-1", "u-2", "u-1", None])

        assert result == {"u-1": "Alice", "u-2": "Bob"}
        assert mock_get.call_count == 2

    def test_no_ids(self, directory):
        assert directory.resolve_many([]) == {}
