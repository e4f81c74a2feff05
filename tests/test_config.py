from __future__ import annotations

from hairstyle_changer.config import Settings


def test_relocation_follows_production_by_default() -> None:
    assert Settings(_env_file=None, PRODUCTION=False).RELOCATE_RESULTS is False
    assert Settings(_env_file=None, PRODUCTION=True).RELOCATE_RESULTS is True
    assert Settings(_env_file=None, PRODUCTION=True, RELOCATE_RESULTS=False).RELOCATE_RESULTS is False


def test_callback_url_only_in_production() -> None:
    assert Settings(_env_file=None, DOMAIN="https://hair.test").callback_url is None
    settings = Settings(_env_file=None, DOMAIN="https://hair.test/", PRODUCTION=True)
    assert settings.callback_url == "https://hair.test/webhooks/kie-image"


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("KIE_API_KEY", "from-env")
    monkeypatch.setenv("storage_backend", "s3")

    settings = Settings(_env_file=None)

    assert settings.KIE_API_KEY == "from-env"
    assert settings.STORAGE_BACKEND == "s3"
