from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

import requests

from hdc.ingestion.leaf_client import (
    LeafClientError,
    build_game_export_url,
    extract_game_identifiers,
    extract_series_id,
    fetch_export,
    list_game_identifiers,
)
from hdc.settings import LeagueSettings

GAME_ONE = "0f8e6a3c-1111-4c1e-9d2a-000000000001"
GAME_TWO = "0f8e6a3c-2222-4c1e-9d2a-000000000002"


def _settings() -> LeagueSettings:
    return LeagueSettings(admin_secret="secret", leaf_base_url="https://leaf.test", fetch_timeout_seconds=5)


class SeriesUrlTests(unittest.TestCase):
    def test_extract_series_id(self) -> None:
        self.assertEqual("4521", extract_series_id("https://leafapp.co/scrims/4521/matches"))

    def test_extract_series_id_rejects_other_urls(self) -> None:
        with self.assertRaises(ValueError):
            extract_series_id("https://example.com/scrims/4521")

    def test_build_game_export_url(self) -> None:
        self.assertEqual("https://leaf.test/game/abc/csv", build_game_export_url(_settings(), "abc"))

    def test_extract_game_identifiers_dedupes_in_page_order(self) -> None:
        html = (
            f'<a href="/game/{GAME_TWO}">2</a>'
            f'<a href="https://leafapp.co/game/{GAME_ONE}">1</a>'
            f'<a href="/game/{GAME_TWO}">again</a>'
        )

        self.assertEqual([GAME_TWO, GAME_ONE], extract_game_identifiers(html))


class FetchExportTests(unittest.TestCase):
    @patch("hdc.ingestion.leaf_client.requests.get")
    def test_returns_body_on_success(self, mock_get: MagicMock) -> None:
        mock_get.return_value = MagicMock(status_code=200, content=b"a,b\n1,2\n")

        body = fetch_export("https://leaf.test/game/x/csv", _settings())

        self.assertEqual(b"a,b\n1,2\n", body)
        _, kwargs = mock_get.call_args
        self.assertEqual(5, kwargs["timeout"])
        self.assertIn("User-Agent", kwargs["headers"])

    @patch("hdc.ingestion.leaf_client.requests.get")
    def test_non_200_raises(self, mock_get: MagicMock) -> None:
        mock_get.return_value = MagicMock(status_code=503, text="down")

        with self.assertRaises(LeafClientError):
            fetch_export("https://leaf.test/game/x/csv", _settings())

    @patch("hdc.ingestion.leaf_client.requests.get")
    def test_network_error_raises(self, mock_get: MagicMock) -> None:
        mock_get.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(LeafClientError):
            fetch_export("https://leaf.test/game/x/csv", _settings())

    @patch("hdc.ingestion.leaf_client.requests.get")
    def test_list_game_identifiers_scrapes_series_page(self, mock_get: MagicMock) -> None:
        page = f'<a href="/game/{GAME_ONE}">1</a>'.encode("utf-8")
        mock_get.return_value = MagicMock(status_code=200, content=page)

        game_ids = list_game_identifiers("https://leafapp.co/scrims/77", _settings())

        self.assertEqual([GAME_ONE], game_ids)
        self.assertEqual("https://leaf.test/scrims/77/matches", mock_get.call_args[0][0])


if __name__ == "__main__":
    unittest.main()
