from shared.config import settings
from shared.security import verify_api_key
from shared.security.api_key import DEVELOPMENT_KEY


class TestInternalApiKey:

    def test_configured_key(self, monkeypatch):
        monkeypatch.setattr(settings, "INTERNAL_API_KEY", "ops-key")
        assert verify_api_key("ops-key") is True
        assert verify_api_key("wrong") is False
        assert verify_api_key(None) is False

    def test_development_placeholder(self, monkeypatch):
        monkeypatch.setattr(settings, "INTERNAL_API_KEY", "")
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")
        assert verify_api_key(DEVELOPMENT_KEY) is True

    def test_production_without_key_rejects_everything(self, monkeypatch):
        monkeypatch.setattr(settings, "INTERNAL_API_KEY", "")
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        assert verify_api_key(DEVELOPMENT_KEY) is False
