"""
APIFlow GUI Shell

The PyQt6 application that provides the visual interface.
Acts as the View and Controller over the GraphStore model.
"""

from apiflow.gui.main_window import MainWindow

__all__ = [
    "MainWindow",
]
