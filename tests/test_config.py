import tomllib

from config import ClassificationPolicy, Config, MatchingPolicy, load_config


class TestLoadConfig:
    """Tests for load_config."""

    def test_creates_default_config(self, tmp_path):
        """A missing config file is created with defaults."""
        config_path = tmp_path / "config" / "ledgerline.toml"

        config = load_config(config_path)

        assert config_path.exists()
        assert config.db_filename == "ledgerline.db"
        assert config.llm_enabled is False
        assert config.classification == ClassificationPolicy()
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        assert data["classification"]["chunk_size"] == 20
        assert data["classification"]["retry"]["max_attempts"] == 3
        assert "api_key" not in data["llm"]

    def test_reads_existing_config(self, tmp_path):
        """Values in the file override defaults; unknown policy keys are ignored."""
        config_path = tmp_path / "ledgerline.toml"
        config_path.write_text(
            f"""
base_dir = "{tmp_path / 'data'}"

[database]
filename = "custom.db"

[logging]
level = "DEBUG"

[llm]
enabled = true
provider = "azure"
api_key = "key"
endpoint = "https://example.openai.azure.com"
deployments = ["gpt-4o", "gpt-4o-mini"]

[classification]
chunk_size = 10
mystery_setting = 3

[classification.retry]
max_attempts = 5

[matching]
base_currency = "EUR"
"""
        )

        config = load_config(config_path)

        assert config.db_path == tmp_path / "data" / "db" / "custom.db"
        assert config.log_level == "DEBUG"
        assert config.llm_enabled
        assert config.llm_provider == "azure"
        assert config.llm_deployments == ["gpt-4o", "gpt-4o-mini"]
        assert config.classification.chunk_size == 10
        assert config.classification.scrutiny_threshold == 0.9
        assert config.retry.max_attempts == 5
        assert config.matching.base_currency == "EUR"
        assert config.matching.auto_max_days == MatchingPolicy().auto_max_days

    def test_round_trip_of_written_defaults(self, tmp_path):
        """Reading back a freshly written config gives the same settings."""
        config_path = tmp_path / "ledgerline.toml"
        written = load_config(config_path)

        read = load_config(config_path)

        assert read == written

    def test_default_paths(self):
        """Defaults live under ~/data/ledgerline."""
        config = Config.default()

        assert config.db_path == config.base_dir / "db" / "ledgerline.db"
        assert config.log_dir == config.base_dir / "logs"
