"""
APIFlow GUI Panels - Dock widget panels for the main window.
"""

from apiflow.gui.panels.node_panel import NodePanel

__all__ = [
    "NodePanel",
]
