"""
Tests for apiflow.core.config module.

Tests the configuration classes and persistence.
"""

import json

from apiflow.core.config import (
    ApiFlowConfig,
    CanvasConfig,
    HttpConfig,
    PathConfig,
    UIConfig,
    get_config,
    set_config,
)


class TestHttpConfig:
    """Tests for HttpConfig dataclass."""

    def test_default_values(self):
        """Test HttpConfig default values."""
        config = HttpConfig()

        assert config.request_timeout == 5.0
        assert config.follow_redirects is True
        assert config.default_content_type == "application/json"


class TestCanvasConfig:
    """Tests for CanvasConfig dataclass."""

    def test_default_values(self):
        """Test CanvasConfig default values."""
        config = CanvasConfig()

        assert config.min_scale == 0.2
        assert config.max_scale == 2.0
        assert config.wheel_zoom_sensitivity == 0.001
        assert config.node_width == 450.0
        assert config.min_node_width == 300.0
        assert config.min_node_height == 200.0


class TestPathConfig:
    """Tests for PathConfig dataclass."""

    def test_default_values(self):
        """Test PathConfig default values."""
        config = PathConfig()

        assert config.user_config_dir.name == ".apiflow"
        assert config.graph_extension == ".apiflow"


class TestApiFlowConfig:
    """Tests for the ApiFlowConfig container."""

    def test_to_dict(self):
        """Test configuration serialization."""
        config = ApiFlowConfig(http=HttpConfig(request_timeout=10.0), ui=UIConfig())
        data = config.to_dict()

        assert data["http"]["request_timeout"] == 10.0
        assert data["canvas"]["max_scale"] == 2.0
        assert data["ui"]["default_window_width"] == 1400

    def test_from_dict_ignores_unknown_keys(self):
        """Test that unknown keys are skipped."""
        config = ApiFlowConfig.from_dict({
            "http": {"request_timeout": 1.5, "bogus": True},
            "canvas": {"grid_size": 40},
        })

        assert config.http.request_timeout == 1.5
        assert config.canvas.grid_size == 40
        assert not hasattr(config.http, "bogus")

    def test_save_and_load(self, temp_dir):
        """Test configuration persistence."""
        path = temp_dir / "config.json"
        config = ApiFlowConfig()
        config.canvas.max_scale = 3.0
        config.save(path)

        assert json.loads(path.read_text())["canvas"]["max_scale"] == 3.0
        assert ApiFlowConfig.load(path).canvas.max_scale == 3.0

    def test_load_missing_file_uses_defaults(self, temp_dir):
        """Test loading when no file exists."""
        config = ApiFlowConfig.load(temp_dir / "missing.json")
        assert config.http.request_timeout == 5.0

    def test_load_corrupt_file_uses_defaults(self, temp_dir):
        """Test loading a file that is not JSON."""
        path = temp_dir / "config.json"
        path.write_text("{not json")

        assert ApiFlowConfig.load(path).canvas.min_scale == 0.2


class TestGlobalConfig:
    """Tests for get_config/set_config."""

    def test_set_config_replaces_global(self):
        """Test that set_config changes what get_config returns."""
        config = ApiFlowConfig()
        config.http.request_timeout = 42.0
        set_config(config)

        assert get_config() is config
        assert get_config().http.request_timeout == 42.0
