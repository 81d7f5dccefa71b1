# test_config.py
import os

import pytest

from pickup_route.config import DEFAULT_CENTER, Settings


def test_defaults():
    s = Settings()
    assert s.rate_limit == 5
    assert s.rate_window_s == 60.0
    assert s.minutes_per_km == 3.0
    assert s.route_timeout_s == 10.0
    assert s.key_precision == 6
    assert s.default_center == DEFAULT_CENTER


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PICKUP_RATE_LIMIT", "10")
    monkeypatch.setenv("PICKUP_MINUTES_PER_KM", "2.5")
    monkeypatch.setenv("PICKUP_OSRM_URL", "http://localhost:5000")
    s = Settings.from_env(str(tmp_path / "missing.env"))
    assert s.rate_limit == 10
    assert s.minutes_per_km == 2.5
    assert s.osrm_url == "http://localhost:5000"


def test_from_dotenv_file(monkeypatch, tmp_path):
    # load_dotenv writes into os.environ; keep that out of other tests
    clean = {k: v for k, v in os.environ.items() if not k.startswith("PICKUP_")}
    monkeypatch.setattr(os, "environ", clean)
    env = tmp_path / ".env"
    env.write_text("PICKUP_DEBOUNCE_S=0.5\nPICKUP_PORT=8080\n", encoding="utf-8")
    s = Settings.from_env(str(env))
    assert s.debounce_s == 0.5
    assert s.port == 8080


def test_bad_number(monkeypatch, tmp_path):
    monkeypatch.setenv("PICKUP_PORT", "eighty")
    with pytest.raises(ValueError, match="PICKUP_PORT"):
        Settings.from_env(str(tmp_path / "missing.env"))
