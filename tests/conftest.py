"""Shared fixtures for service tests."""

import pytest
from fastapi.testclient import TestClient

from image_convert_service import ImageConvertProcessor, ServiceConfig, Settings, create_app


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        api_key="test-key",
        admin_access_token="admin-secret",
        log_dir=str(tmp_path / "log"),
        log_dump_delay_seconds=0,
    )


@pytest.fixture
def make_client(settings):
    """
    Build a TestClient around an ImageConvertProcessor with optional overrides.

    The client sends the configured API key unless ``authorize`` is False.
    """

    def _make(authorize: bool = True, **processor_kwargs) -> TestClient:
        processor_kwargs.setdefault("settings", settings)
        app_settings = processor_kwargs["settings"]
        processor = ImageConvertProcessor(**processor_kwargs)
        app = create_app(processor, ServiceConfig(resource_sampling=False), settings=app_settings)
        headers = {}
        if authorize and app_settings.api_key:
            headers["Authorization"] = f"Bearer {app_settings.api_key}"
        return TestClient(app, headers=headers)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
