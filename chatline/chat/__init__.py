"""Chat session domain: models, state transitions and the session controller."""
