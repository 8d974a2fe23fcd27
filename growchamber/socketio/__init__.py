"""
Socket.IO Event Handlers
========================

Namespaces:
- /live - Live state, watchdog status, recommendations, triggered actions, alerts

Usage:
    Call after socketio.init_app(); every app instance gets its own server,
    so handlers are attached again on each call.

    from growchamber.socketio import register_handlers
    register_handlers()
"""

import logging

logger = logging.getLogger(__name__)


def register_handlers(sio=None):
    """
    Register all Socket.IO event handlers.

    Must be called AFTER socketio.init_app().
    """
    from growchamber.extensions import socketio

    from .live_handlers import register_live_handlers

    register_live_handlers(sio or socketio)

    logger.info("Socket.IO handlers registered (live)")
