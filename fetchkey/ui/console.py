"""Terminal renderer that follows the agent during training."""

import sys
import time
from typing import List, Optional, TextIO

from ..domain.types import Coord, GridProvider


def render_grid(width: int, height: int, obstacles, agent: Optional[Coord],
                key: Coord, goal: Coord, show_key: bool = True, has_key: bool = False) -> str:
    """Draw the grid as text, top row first (y grows upward)."""
    blocked = {tuple(c) for c in obstacles}
    rows: List[str] = []

    for y in range(height - 1, -1, -1):
        row = []
        for x in range(width):
            cell = (x, y)
            if agent is not None and cell == tuple(agent):
                row.append('a' if has_key else 'A')
            elif cell in blocked:
                row.append('#')
            elif cell == tuple(goal):
                row.append('G')
            elif cell == tuple(key) and show_key:
                row.append('K')
            else:
                row.append('.')
        rows.append(''.join(row))

    return '\n'.join(rows)


class ConsoleRenderer:
    """Observer that prints the grid after every step."""

    def __init__(self, grid: GridProvider, key: Coord, goal: Coord,
                 step_delay: float = 0.0, stream: Optional[TextIO] = None):
        self.grid = grid
        self.key = key
        self.goal = goal
        self.step_delay = step_delay
        self.stream = stream or sys.stdout
        self.key_visible = True
        self.frames = 0

    def on_key_visibility(self, visible: bool) -> None:
        self.key_visible = visible

    def on_position(self, coord: Coord, has_key: bool) -> None:
        width, height = self.grid.size
        frame = render_grid(width, height, self.grid.get_obstacles(), coord,
                            self.key, self.goal, self.key_visible, has_key)
        print(frame, file=self.stream)
        print(file=self.stream)
        self.frames += 1

        if self.step_delay > 0:
            time.sleep(self.step_delay)
