"""
Centralized Configuration for APIFlow.

This module provides a single source of truth for configuration values
used by the HTTP executor, the canvas and the editor window.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class HttpConfig:
    """HTTP executor configuration values."""

    # Timeouts (seconds)
    request_timeout: float = 5.0

    follow_redirects: bool = True

    # Content-Type sent with JSON bodies that set none
    default_content_type: str = "application/json"


@dataclass
class CanvasConfig:
    """Canvas geometry and viewport configuration values."""

    # Viewport
    min_scale: float = 0.2
    max_scale: float = 2.0
    wheel_zoom_sensitivity: float = 0.001

    # Node dimensions
    node_width: float = 450.0
    auto_node_height: float = 600.0
    min_node_width: float = 300.0
    min_node_height: float = 200.0
    header_height: float = 120.0
    resize_handle_size: float = 16.0

    # Sockets stack top-to-bottom from these node-local offsets
    input_socket_top: float = 185.0
    output_socket_top: float = 250.0
    socket_pitch: float = 44.0
    socket_radius: float = 8.0

    # Background grid
    grid_size: int = 20

    # Connection hit tolerance for click-to-delete (canvas units)
    connection_hit_tolerance: float = 6.0


@dataclass
class UIConfig:
    """Editor window configuration values."""

    min_window_width: int = 1024
    min_window_height: int = 768
    default_window_width: int = 1400
    default_window_height: int = 900


@dataclass
class PathConfig:
    """Path-related configuration values."""

    user_config_dir: Path = field(default_factory=lambda: Path.home() / ".apiflow")

    # File extensions
    graph_extension: str = ".apiflow"


@dataclass
class ApiFlowConfig:
    """Main configuration container for APIFlow."""

    http: HttpConfig = field(default_factory=HttpConfig)
    canvas: CanvasConfig = field(default_factory=CanvasConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    paths: PathConfig = field(default_factory=PathConfig)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "http": {
                "request_timeout": self.http.request_timeout,
                "follow_redirects": self.http.follow_redirects,
                "default_content_type": self.http.default_content_type,
            },
            "canvas": {
                "min_scale": self.canvas.min_scale,
                "max_scale": self.canvas.max_scale,
                "wheel_zoom_sensitivity": self.canvas.wheel_zoom_sensitivity,
                "node_width": self.canvas.node_width,
                "min_node_width": self.canvas.min_node_width,
                "min_node_height": self.canvas.min_node_height,
                "socket_pitch": self.canvas.socket_pitch,
                "grid_size": self.canvas.grid_size,
            },
            "ui": {
                "min_window_width": self.ui.min_window_width,
                "min_window_height": self.ui.min_window_height,
                "default_window_width": self.ui.default_window_width,
                "default_window_height": self.ui.default_window_height,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApiFlowConfig":
        """Create configuration from dictionary, ignoring unknown keys."""
        config = cls()

        for section_name in ("http", "canvas", "ui"):
            section = getattr(config, section_name)
            for key, value in data.get(section_name, {}).items():
                if hasattr(section, key):
                    setattr(section, key, value)
                else:
                    logger.debug(f"Ignoring unknown config key: {section_name}.{key}")

        return config

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = self.paths.user_config_dir / "config.json"

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "ApiFlowConfig":
        """Load configuration from file, using defaults if not found."""
        config = cls()

        if path is None:
            path = config.paths.user_config_dir / "config.json"

        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
                config = cls.from_dict(data)
                logger.info(f"Configuration loaded from {path}")
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load configuration from {path}: {e}")
                logger.info("Using default configuration")

        return config


# Global configuration instance - lazy loaded
_config: Optional[ApiFlowConfig] = None


def get_config() -> ApiFlowConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ApiFlowConfig.load()
    return _config


def set_config(config: ApiFlowConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
