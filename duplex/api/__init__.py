"""HTTP and WebSocket API for the conversation backend."""
