"""Live notification delivery over WebSocket."""
