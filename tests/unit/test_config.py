"""Tests for application, detection and sync configuration."""

from decimal import Decimal

import pytest

from pdv_sentinel.config import Settings
from pdv_sentinel.domains.detection.config import DetectionConfig
from pdv_sentinel.domains.sync.config import SyncOptions, load_connector_configs
from pdv_sentinel.domains.sync.models import DatabaseType
from pdv_sentinel.shared.exceptions import ConfigurationError


class TestSettings:
    def test_default_settings(self):
        settings = Settings()
        assert settings.app_name == "pdv-sentinel"
        assert settings.app_version == "0.1.0"
        assert settings.log_format == "json"

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("APP_NAME", "test-app")
        monkeypatch.setenv("LOG_FORMAT", "console")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("SYNC_BATCH_SIZE", "250")
        settings = Settings()
        assert settings.app_name == "test-app"
        assert settings.log_format == "console"
        assert settings.debug is True
        assert settings.sync_batch_size == 250

    def test_database_url_default(self):
        settings = Settings()
        assert "postgresql+asyncpg" in settings.database_url

    def test_sync_defaults(self):
        settings = Settings()
        assert settings.sync_dedup_window_minutes == 5
        assert settings.sync_max_retries == 3
        assert settings.sync_retry_delay_ms == 1000


class TestDetectionConfig:
    def test_defaults(self):
        config = DetectionConfig()
        assert config.ghost.delay_seconds == 60
        assert config.pbm.match_window_seconds == 300
        assert config.no_sale.events_per_shift == 3
        assert config.cpf.employee_document_max == 10
        assert config.cpf.customer_document_max == 20
        assert config.cash.minimum_amount == Decimal("10.00")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DETECTION_GHOST_DELAY_SECONDS", "120")
        monkeypatch.setenv("DETECTION_PARALLEL_MODULES", "false")
        monkeypatch.setenv("DETECTION_CASH_MINIMUM_AMOUNT", "25.50")
        config = DetectionConfig.from_env()
        assert config.ghost.delay_seconds == 120
        assert config.parallel_modules is False
        assert config.cash.minimum_amount == Decimal("25.50")

    def test_instances_do_not_share_thresholds(self):
        a, b = DetectionConfig(), DetectionConfig()
        a.ghost.delay_seconds = 5
        assert b.ghost.delay_seconds == 60


class TestSyncOptions:
    def test_defaults(self):
        options = SyncOptions()
        assert options.full_sync is False
        assert options.dedup_enabled is True
        assert options.dedup_window_minutes == 5

    @pytest.mark.parametrize(
        "field,value",
        [("batch_size", 0), ("max_records", -1), ("max_retries", 0), ("dedup_window_minutes", 0)],
    )
    def test_invalid(self, field, value):
        with pytest.raises(ConfigurationError, match=field):
            SyncOptions(**{field: value})


class TestLoadConnectorConfigs:
    def test_list_form(self, tmp_path):
        path = tmp_path / "erp.yaml"
        path.write_text(
            "- type: postgresql\n"
            "  host: erp.local\n"
            "  port: 5432\n"
            "  database: erp\n"
            "  username: reader\n"
        )
        (config,) = load_connector_configs(path)
        assert config.type == DatabaseType.POSTGRESQL
        assert config.password == ""

    def test_named_mapping_form(self, tmp_path):
        path = tmp_path / "erp.yaml"
        path.write_text(
            "connectors:\n"
            "  loja-centro:\n"
            "    type: mysql\n"
            "    host: 10.0.0.5\n"
            "    port: 3306\n"
            "    database: erp\n"
            "    username: reader\n"
            "    ssl: true\n"
            "  loja-norte:\n"
            "    type: sqlserver\n"
            "    host: 10.0.0.6\n"
            "    port: 1433\n"
            "    database: ERP\n"
            "    username: sa\n"
        )
        configs = load_connector_configs(path)
        assert [c.source_name for c in configs] == ["loja-centro", "loja-norte"]
        assert configs[0].ssl is True

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_connector_configs(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "erp.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError, match="No connectors"):
            load_connector_configs(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "erp.yaml"
        path.write_text("connectors: [unclosed\n")
        with pytest.raises(ConfigurationError, match="not valid YAML"):
            load_connector_configs(path)

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "erp.yaml"
        path.write_text("- type: postgresql\n  host: erp.local\n  port: 99999\n")
        with pytest.raises(ConfigurationError, match="Invalid connector configuration"):
            load_connector_configs(path)
