"""Fetch-Key Q-Learning - a tabular reinforcement learning trainer for grid worlds.

This package implements a Q-Learning agent that learns to pick up a key and
then reach a goal cell, with configurable reward shaping and penalties
against standing still, looping and detours.
"""

__version__ = "1.0.0"
__author__ = "Fetch-Key RL Demo"
