"""Host-game collaborators: protocols plus in-memory implementations."""
