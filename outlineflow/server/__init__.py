"""HTTP and WebSocket adapter for a single flowchart."""
