"""Room and game domain services: rules, registry, timers and throttling.

This package contains the in-memory domain logic that socket handlers and
HTTP routes import, keeping transport concerns separated from the game
mechanics.
"""
