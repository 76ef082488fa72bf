from __future__ import annotations

import pytest

from recon_crawler.config import Settings, _split_csv, load_settings
from recon_crawler.errors import ConfigError


@pytest.mark.unit
def test_defaults_are_valid() -> None:
    settings = load_settings()

    assert settings.scope_mode == "sub"
    assert settings.max_depth == 3
    assert settings.fuzz_enabled is False
    assert settings.pattern_caps() == {"api": 5, "form": 5, "normal": 3, "image": 2, "static": 1}


@pytest.mark.unit
def test_environment_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RECON_MAX_DEPTH", "5")
    monkeypatch.setenv("RECON_SCOPE_MODE", "rdn")

    settings = load_settings(scope_mode="strict", workers=None)

    assert settings.max_depth == 5
    assert settings.scope_mode == "strict"
    assert settings.workers is None


@pytest.mark.unit
def test_dotenv_file_is_read(tmp_path) -> None:
    (tmp_path / ".env").write_text("RECON_RATE_PER_SECOND=7.5\nRECON_PASSIVE_ROBOTS=false\n")

    settings = load_settings()

    assert settings.rate_per_second == 7.5
    assert settings.passive_robots is False


@pytest.mark.unit
@pytest.mark.parametrize(
    "overrides",
    [
        {"target_url": "ftp://example.com/"},
        {"target_url": "example.com"},
        {"scope_mode": "everything"},
        {"max_depth": -1},
        {"rate_per_second": 0},
        {"request_timeout": 60, "max_timeout": 30},
        {"cookie": "a=1", "cookie_file": "cookies.txt"},
    ],
)
def test_invalid_values_raise_config_error(overrides: dict) -> None:
    with pytest.raises(ConfigError):
        load_settings(**overrides)


@pytest.mark.unit
def test_effective_workers_depend_on_depth() -> None:
    assert Settings(max_depth=2).effective_workers() == 20
    assert Settings(max_depth=3).effective_workers() == 30
    assert Settings(max_depth=3, workers=4).effective_workers() == 4


@pytest.mark.unit
def test_effective_burst_defaults_to_tenth_of_rate() -> None:
    assert Settings(rate_per_second=50).effective_burst() == 5
    assert Settings(rate_per_second=3).effective_burst() == 1
    assert Settings(rate_per_second=50, burst=12).effective_burst() == 12


@pytest.mark.unit
def test_user_agent_falls_back_to_browser_pool() -> None:
    assert Settings(user_agent="scanner/1.0").get_random_user_agent() == "scanner/1.0"
    assert Settings().get_random_user_agent() in Settings.USER_AGENTS


@pytest.mark.unit
def test_csv_getters() -> None:
    settings = Settings(
        blacklist_hosts=" CDN.example.com, ,ads.example.com",
        blacklist_regex=r"\.bak$,/tmp/",
        include_paths="/app/*",
        excluded_params="Session, token",
    )

    assert settings.get_blacklist_hosts() == ["cdn.example.com", "ads.example.com"]
    assert settings.get_blacklist_regex() == [r"\.bak$", "/tmp/"]
    assert settings.get_include_paths() == ["/app/*"]
    assert settings.get_exclude_paths() == []
    assert settings.get_excluded_params() == ["session", "token"]


@pytest.mark.unit
def test_split_csv() -> None:
    assert _split_csv("") == []
    assert _split_csv("A, b ,,C", lower=True) == ["a", "b", "c"]


@pytest.mark.unit
def test_paths(tmp_path) -> None:
    settings = Settings(out_dir=str(tmp_path / "out"), checkpoint_dir=str(tmp_path / "cp"))

    assert settings.out_path == tmp_path / "out"
    assert settings.checkpoint_path == tmp_path / "cp"
