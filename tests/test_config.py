"""
tests/test_config.py

Environment readers and the cached settings built from them.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

import app.config as app_config
import db.config as db_config
from app.config import get_transform_settings


@pytest.fixture()
def fresh_transform_settings() -> Iterator[None]:
    get_transform_settings.cache_clear()
    yield
    get_transform_settings.cache_clear()


class TestEnvReaders:
    def test_app_settings_share_the_db_readers(self) -> None:
        assert app_config.get_int_env is db_config.get_int_env
        assert app_config.get_float_env is db_config.get_float_env
        assert app_config.get_bool_env is db_config.get_bool_env

    def test_unparseable_numbers_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECON_TEST_INT", "ten")
        monkeypatch.setenv("RECON_TEST_FLOAT", "n/a")

        assert db_config.get_int_env("RECON_TEST_INT", 7) == 7
        assert db_config.get_float_env("RECON_TEST_FLOAT", 0.5) == 0.5

    def test_values_are_stripped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RECON_TEST_INT", " 42 ")
        monkeypatch.setenv("RECON_TEST_FLOAT", "2.5\n")

        assert db_config.get_int_env("RECON_TEST_INT", 7) == 42
        assert db_config.get_float_env("RECON_TEST_FLOAT", 0.5) == 2.5

    def test_bool_parsing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RECON_TEST_BOOL", raising=False)
        assert db_config.get_bool_env("RECON_TEST_BOOL", True) is True

        monkeypatch.setenv("RECON_TEST_BOOL", "Yes")
        assert db_config.get_bool_env("RECON_TEST_BOOL", False) is True

        monkeypatch.setenv("RECON_TEST_BOOL", "off")
        assert db_config.get_bool_env("RECON_TEST_BOOL", True) is False


@pytest.mark.usefixtures("fresh_transform_settings")
class TestTransformSettings:
    def test_review_floor_is_read_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRANSFORM_REVIEW_MIN_CONFIDENCE", "0.9")

        assert get_transform_settings().review_min_confidence == 0.9

    def test_review_floor_is_clamped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TRANSFORM_REVIEW_MIN_CONFIDENCE", "1.5")

        assert get_transform_settings().review_min_confidence == 1.0

    def test_review_floor_defaults_above_classifier_floor(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TRANSFORM_REVIEW_MIN_CONFIDENCE", raising=False)
        monkeypatch.delenv("CATEGORY_MIN_CONFIDENCE", raising=False)
        app_config.get_classifier_settings.cache_clear()

        try:
            classifier_floor = app_config.get_classifier_settings().min_confidence
            assert get_transform_settings().review_min_confidence > classifier_floor
        finally:
            app_config.get_classifier_settings.cache_clear()
