"""
Remote editor surface for live script instances.

Usage:
    from livebridge.web_controller import RemoteController

    controller = RemoteController(widget, port=8765)
    controller.start()
"""

from .server import RemoteController

__all__ = ['RemoteController']
