"""WebSocket transports."""

from performer.api.websocket.pose import PoseBroadcaster, PoseWebSocket

__all__ = ["PoseBroadcaster", "PoseWebSocket"]
