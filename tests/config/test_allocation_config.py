"""
Configuration loading and validation.

Verifies:
- The packaged default configuration loads and validates
- Explicit path and ALLOCATION_CONFIG resolution
- Unknown keys and bad values are rejected
- AllocationOrchestrator.from_config wires engine, retries and actor
"""

from uuid import UUID

import pytest
import yaml

from allocation_config import CONFIG_ENV_VAR, get_active_config
from allocation_config.loader import compute_checksum, load_yaml_file, parse_config
from allocation_config.schema import AllocationConfig
from allocation_config.validator import validate_configuration


def _write(tmp_path, data, name="alloc.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultConfig:

    def test_packaged_default(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        config = get_active_config()

        assert config.config_id == "default"
        assert config.engine.max_conflict_retries == 3
        assert config.reporting.display_currency == "USD"
        assert config.database.url.startswith("sqlite:///")
        assert len(config.checksum) == 64

    def test_trace_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "ALLOCATION_CONFIG_TRACE"]
        assert traces[-1]["config_id"] == "default"
        assert traces[-1]["checksum"] == config.checksum


class TestResolution:

    def test_explicit_path(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "config_id": "eu",
                "version": 2,
                "engine": {"max_conflict_retries": 5},
                "reporting": {"display_currency": "EUR"},
            },
        )

        config = get_active_config(path)

        assert config.config_id == "eu"
        assert config.version == 2
        assert config.engine.max_conflict_retries == 5
        assert config.reporting.display_currency == "EUR"
        assert config.database.pool_size == 20  # default kept

    def test_environment_variable(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"config_id": "from-env"})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_active_config().config_id == "from-env"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")


class TestParsing:

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_config({"config_id": "x", "ledger": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="max_retries"):
            parse_config({"config_id": "x", "engine": {"max_retries": 3}})

    def test_config_id_required(self):
        with pytest.raises(ValueError, match="config_id"):
            parse_config({"version": 1})

    def test_wrong_type(self):
        with pytest.raises(ValueError, match="integer"):
            parse_config({"config_id": "x", "engine": {"max_conflict_retries": "three"}})

    def test_actor_parsed_as_uuid(self):
        actor = "4b7c9d3e-1111-4222-8333-944455556666"
        config = parse_config({"config_id": "x", "engine": {"default_actor": actor}})
        assert config.engine.default_actor == UUID(actor)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_checksum_stable(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestValidation:

    def _config(self, **sections):
        return parse_config({"config_id": "x", **sections})

    def test_default_is_valid(self):
        assert validate_configuration(AllocationConfig(config_id="x", version=1)).is_valid

    def test_negative_retries(self):
        result = validate_configuration(self._config(engine={"max_conflict_retries": -1}))
        assert not result.is_valid
        assert any("max_conflict_retries" in e for e in result.errors)

    def test_bad_display_currency(self):
        result = validate_configuration(self._config(reporting={"display_currency": "DOLLARS"}))
        assert any("display_currency" in e for e in result.errors)

    def test_unsupported_backend(self):
        result = validate_configuration(self._config(database={"url": "mysql://u:p@h/db"}))
        assert any("not supported" in e for e in result.errors)

    def test_invalid_config_refused(self, tmp_path):
        path = _write(tmp_path, {"config_id": "x", "database": {"pool_size": 0}})
        with pytest.raises(ValueError, match="pool_size"):
            get_active_config(path)


class TestOrchestratorFromConfig:

    def test_wires_engine_and_settings(self, tmp_path):
        from allocation_kernel.db.engine import drop_tables, reset_engine
        from allocation_kernel.domain.values import Money
        from allocation_kernel.services.allocation_orchestrator import AllocationOrchestrator

        actor = "4b7c9d3e-1111-4222-8333-944455556666"
        path = _write(
            tmp_path,
            {
                "config_id": "t",
                "database": {"url": f"sqlite:///{tmp_path / 'cfg.db'}"},
                "engine": {"max_conflict_retries": 1, "default_actor": actor},
                "reporting": {"display_currency": "GBP"},
            },
        )

        orchestrator = AllocationOrchestrator.from_config(get_active_config(path))
        try:
            assert orchestrator.max_conflict_retries == 1
            assert orchestrator.actor_id == UUID(actor)
            assert orchestrator.display_currency == "GBP"
            result = orchestrator.register_source("credit_note", Money.of("5.00", "GBP"), "issued")
            assert result.is_success
        finally:
            drop_tables()
            reset_engine()
