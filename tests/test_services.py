import json
from unittest.mock import Mock

import pytest
import requests

from app.services import RatesService, to_usd_per_unit
from domain.currency import Currency, Settings


def _response(payload):
    response = Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class TestRatesService:
    def setup_method(self):
        self.session = Mock(spec=requests.Session)

    def _service(self, tmp_path):
        return RatesService(
            url="https://rates.example/latest",
            timeout=3,
            cache_path=str(tmp_path / "rates.json"),
            session=self.session,
        )

    def test_quotes_are_inverted_and_cached(self, tmp_path):
        self.session.get.return_value = _response(
            {"success": True, "rates": {"RUB": 90.0, "EUR": 0.9, "GEL": 2.7}}
        )
        service = self._service(tmp_path)

        update = service.fetch_latest()

        assert update.ok
        assert update.rates[Currency.USD] == 1.0
        assert update.rates[Currency.RUB] == round(1 / 90.0, 6)
        assert update.rates[Currency.EUR] == round(1 / 0.9, 6)
        self.session.get.assert_called_once()
        assert self.session.get.call_args.kwargs["timeout"] == 3
        with open(tmp_path / "rates.json", encoding="utf-8") as f:
            assert json.load(f)["GEL"] == round(1 / 2.7, 6)

    def test_missing_quote_is_skipped(self, tmp_path):
        self.session.get.return_value = _response({"rates": {"EUR": 0.9}})
        update = self._service(tmp_path).fetch_latest()
        assert Currency.RUB not in update.rates

    def test_network_error_uses_cache(self, tmp_path):
        (tmp_path / "rates.json").write_text(json.dumps({"EUR": 1.2, "XYZ": 5}), encoding="utf-8")
        self.session.get.side_effect = requests.ConnectionError("offline")

        update = self._service(tmp_path).fetch_latest(fallback=Settings())

        assert not update.ok
        assert "Network error" in update.error
        assert update.rates == {Currency.EUR: 1.2}

    def test_network_error_without_cache_uses_settings(self, tmp_path):
        self.session.get.side_effect = requests.Timeout("slow")
        settings = Settings(base_currency="EUR", rates={"USD": 0.5})

        update = self._service(tmp_path).fetch_latest(fallback=settings)

        assert not update.ok
        assert update.rates[Currency.USD] == 1.0
        assert update.rates[Currency.EUR] == pytest.approx(2.0)

    def test_nothing_available_gives_unit_rates(self, tmp_path):
        self.session.get.side_effect = requests.ConnectionError("offline")
        update = self._service(tmp_path).fetch_latest()
        assert set(update.rates.values()) == {1.0}

    def test_malformed_payload(self, tmp_path):
        self.session.get.return_value = _response({"success": False, "error": "quota"})
        update = self._service(tmp_path).fetch_latest()
        assert update.error == "Malformed rates response"

    def test_invalid_json(self, tmp_path):
        response = _response(None)
        response.json.side_effect = ValueError("not json")
        self.session.get.return_value = response
        update = self._service(tmp_path).fetch_latest()
        assert update.error.startswith("Invalid response")


@pytest.mark.parametrize("raw", [0, -1, "abc", None, float("inf")])
def test_to_usd_per_unit_rejects_bad_quotes(raw):
    assert to_usd_per_unit(raw) == 1.0


def test_to_usd_per_unit_inverts():
    assert to_usd_per_unit(4) == 0.25
