"""Room domain services: state machine, entries, scoring, projection and timers.

This package holds the game rules. HTTP routes and socket handlers import
from here, keeping transport concerns separated from core game mechanics.
"""
