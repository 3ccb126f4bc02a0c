"""
TRADE-UP Configuration Tests

Copyright (c) 2026 Momentum. All rights reserved.
"""

import pytest
import yaml

from tradeup.assets import AssetSpec
from tradeup.config import (
    ConfigError,
    ConfigManager,
    ConfigValidationError,
    EscrowConfig,
    get_config,
    get_config_manager,
)
from tradeup.custody import InMemoryAssetCollection


@pytest.fixture
def kittens():
    return InMemoryAssetCollection("kittens")


@pytest.fixture
def dragons():
    return InMemoryAssetCollection("dragons")


# =============================================================================
# PROCESS CONFIGURATION
# =============================================================================

class TestConfigManager:
    """Loading, overriding and validating process-wide settings."""

    def test_singleton(self):
        """Every ConfigManager() is the same instance."""
        assert ConfigManager() is get_config_manager()

    def test_defaults(self):
        """Defaults apply when nothing is configured."""
        manager = get_config_manager()
        assert manager.get("escrow.default_ttl_seconds") == 7 * 24 * 60 * 60
        assert manager.get("escrow.max_chain_length") == 0
        assert manager.get("observability.log_format") == "json"

    def test_set_and_get(self):
        """Dotted paths address individual values."""
        manager = get_config_manager()
        manager.set("escrow.default_ttl_seconds", 3600)
        assert get_config().escrow.default_ttl_seconds.get() == 3600

    def test_set_rejects_invalid_value(self):
        """Validators guard runtime overrides."""
        with pytest.raises(ConfigValidationError):
            get_config_manager().set("escrow.default_ttl_seconds", 0)
        with pytest.raises(ConfigValidationError):
            get_config_manager().set("observability.log_format", "xml")

    def test_invalid_path(self):
        """Unknown paths and sections are errors."""
        manager = get_config_manager()
        with pytest.raises(ConfigError):
            manager.get("escrow.nope")
        with pytest.raises(ConfigError):
            manager.set("escrow", 5)

    def test_environment_overrides(self, monkeypatch):
        """TRADEUP_* variables win over runtime values."""
        manager = get_config_manager()
        manager.set("escrow.default_ttl_seconds", 3600)
        monkeypatch.setenv("TRADEUP_DEFAULT_TTL", "60")
        assert manager.get("escrow.default_ttl_seconds") == 60

    def test_validate_reports_bad_environment(self, monkeypatch):
        """Environment values are validated too."""
        monkeypatch.setenv("TRADEUP_MAX_CHAIN_LENGTH", "-3")
        errors = get_config_manager().validate()
        assert len(errors) == 1
        assert errors[0].startswith("escrow.max_chain_length")

    def test_validate_reports_unparseable_environment(self, monkeypatch):
        """Non-numeric values for integer settings are reported."""
        monkeypatch.setenv("TRADEUP_DEFAULT_TTL", "soon")
        errors = get_config_manager().validate()
        assert errors and errors[0].startswith("escrow.default_ttl_seconds")

    def test_load_from_file(self, tmp_path):
        """YAML files are applied section by section."""
        path = tmp_path / "tradeup.yaml"
        path.write_text(yaml.safe_dump({
            "escrow": {"default_ttl_seconds": 120, "max_chain_length": 5},
            "observability": {"log_level": "debug"},
        }))
        manager = get_config_manager()
        manager.load_from_file(path)
        assert manager.config.to_dict() == {
            "escrow": {"default_ttl_seconds": 120, "max_chain_length": 5},
            "observability": {"log_level": "debug", "log_format": "json"},
        }

    def test_load_rejects_unknown_key(self, tmp_path):
        """Typos in configuration files are reported."""
        path = tmp_path / "tradeup.yaml"
        path.write_text("escrow:\n  default_ttl: 5\n")
        with pytest.raises(ConfigError, match="escrow.default_ttl"):
            get_config_manager().load_from_file(path)

    def test_load_rejects_bad_documents(self, tmp_path):
        """Missing files, broken YAML and non-mapping roots are errors."""
        manager = get_config_manager()
        with pytest.raises(ConfigError):
            manager.load_from_file(tmp_path / "missing.yaml")

        broken = tmp_path / "broken.yaml"
        broken.write_text("escrow: [unclosed\n")
        with pytest.raises(ConfigError):
            manager.load_from_file(broken)

        listing = tmp_path / "list.yaml"
        listing.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            manager.load_from_file(listing)

    def test_load_defaults_from_working_directory(self, tmp_path, monkeypatch):
        """./tradeup.yaml is picked up by load_defaults()."""
        (tmp_path / "tradeup.yaml").write_text("escrow:\n  max_chain_length: 3\n")
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        loaded = get_config_manager().load_defaults()
        assert [p.name for p in loaded] == ["tradeup.yaml"]
        assert get_config_manager().get("escrow.max_chain_length") == 3

    def test_reset(self):
        """reset() drops runtime overrides."""
        manager = get_config_manager()
        manager.set("escrow.max_chain_length", 9)
        manager.reset()
        assert manager.get("escrow.max_chain_length") == 0

    def test_change_callback(self):
        """Callbacks see the old and new values."""
        seen = []
        value = get_config().escrow.max_chain_length
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set(4)
        assert seen == [(None, 4)]

    def test_export_schema(self):
        """The schema documents every setting with its environment variable."""
        schema = get_config_manager().export_schema()
        ttl = schema["properties"]["escrow"]["default_ttl_seconds"]
        assert ttl["type"] == "int"
        assert ttl["env_var"] == "TRADEUP_DEFAULT_TTL"
        assert "log_level" in schema["properties"]["observability"]

    def test_to_yaml(self):
        """The configuration serializes to YAML."""
        assert yaml.safe_load(get_config().to_yaml())["escrow"]["max_chain_length"] == 0


# =============================================================================
# PER-ESCROW CONFIGURATION
# =============================================================================

class TestEscrowConfig:
    """Immutable parameters fixed at escrow creation."""

    def test_create_derives_expiry(self, kittens, dragons):
        """expires_at = now + ttl."""
        config = EscrowConfig.create(AssetSpec(kittens, 1), AssetSpec.any_of(dragons), now=50, ttl_seconds=10)
        assert config.expires_at == 60
        assert config.max_chain_length == 0

    def test_create_uses_default_ttl(self, kittens, dragons):
        """The configured TTL applies when none is given."""
        get_config_manager().set("escrow.default_ttl_seconds", 30)
        config = EscrowConfig.create(AssetSpec(kittens, 1), AssetSpec(dragons, 2), now=0)
        assert config.expires_at == 30

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl(self, kittens, dragons, ttl):
        """A chain must have time to run."""
        with pytest.raises(ConfigValidationError):
            EscrowConfig.create(AssetSpec(kittens, 1), AssetSpec(dragons, 2), now=0, ttl_seconds=ttl)

    def test_starting_spec_must_be_exact(self, kittens, dragons):
        """The starting asset cannot be a wildcard."""
        with pytest.raises(ConfigValidationError):
            EscrowConfig(starting=AssetSpec.any_of(kittens), final=AssetSpec(dragons, 2), expires_at=10)

    @pytest.mark.parametrize("asset_id", [-1, "7", None])
    def test_spec_ids_validated(self, kittens, dragons, asset_id):
        """Spec ids must be non-negative integers."""
        with pytest.raises(ConfigValidationError):
            EscrowConfig(starting=AssetSpec(kittens, asset_id), final=AssetSpec(dragons, 2), expires_at=10)

    def test_expiry_must_be_integer(self, kittens, dragons):
        """Timestamps are whole seconds."""
        with pytest.raises(ConfigValidationError):
            EscrowConfig(starting=AssetSpec(kittens, 1), final=AssetSpec(dragons, 2), expires_at=10.5)

    def test_negative_chain_limit(self, kittens, dragons):
        """max_chain_length is zero or positive."""
        with pytest.raises(ConfigValidationError):
            EscrowConfig(
                starting=AssetSpec(kittens, 1), final=AssetSpec(dragons, 2),
                expires_at=10, max_chain_length=-1,
            )

    def test_frozen(self, kittens, dragons):
        """Configuration cannot change after creation."""
        config = EscrowConfig(starting=AssetSpec(kittens, 1), final=AssetSpec(dragons, 2), expires_at=10)
        with pytest.raises(AttributeError):
            config.expires_at = 99

    def test_to_dict(self, kittens, dragons):
        """Specs render by class name; the wildcard renders as '*'."""
        config = EscrowConfig(
            starting=AssetSpec(kittens, 1),
            final=AssetSpec.any_of(dragons),
            expires_at=10,
            minter=InMemoryAssetCollection("rewards"),
        )
        assert config.to_dict() == {
            "starting": {"asset_class": "kittens", "asset_id": 1},
            "final": {"asset_class": "dragons", "asset_id": "*"},
            "expires_at": 10,
            "minter": "rewards",
            "max_chain_length": 0,
        }
