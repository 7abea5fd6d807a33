"""Game domain services: scoring, answer intake, leaderboard aggregation,
host transitions and timers.

Imported by HTTP routes and socket handlers, keeping transport concerns
separated from core game mechanics.
"""
