"""
Canvas Model

Toolkit-independent viewport, socket geometry and pointer interaction
state used by the node graph view.
"""

from apiflow.canvas.viewport import Viewport, ViewState
from apiflow.canvas.geometry import HitTarget, SocketGeometry
from apiflow.canvas.interaction import InteractionStateMachine, PointerButton, PointerEvent

__all__ = [
    "Viewport",
    "ViewState",
    "HitTarget",
    "SocketGeometry",
    "InteractionStateMachine",
    "PointerButton",
    "PointerEvent",
]
