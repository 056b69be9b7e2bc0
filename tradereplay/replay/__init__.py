"""Replay clock for stepping through recorded market data."""

from tradereplay.replay.controller import ReplayController

__all__ = ["ReplayController"]
