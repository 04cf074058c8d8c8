"""
Obstacle layout serialization for saving and loading grids.
Layouts carry the start/key/goal cells so protected cells can be enforced on load.
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..domain.types import Coord, Grid, TrainingConfig
from .grid_factory import create_grid

logger = logging.getLogger(__name__)

LAYOUT_VERSION = "1.0"


class LayoutData:
    """Container for an obstacle layout with metadata."""

    def __init__(self, width: int, height: int, obstacles: List[Coord],
                 start: Coord, key: Coord, goal: Coord, name: str = ""):
        self.width = width
        self.height = height
        self.obstacles = [tuple(c) for c in obstacles]
        self.start = tuple(start)
        self.key = tuple(key)
        self.goal = tuple(goal)
        self.name = name
        self.created_at = datetime.now().isoformat()

    @property
    def protected_cells(self) -> set:
        return {self.start, self.key, self.goal}

    def to_dict(self) -> Dict[str, Any]:
        """Convert layout data to dictionary for serialization."""
        return {
            'width': self.width,
            'height': self.height,
            'obstacles': [list(c) for c in sorted(self.obstacles)],
            'start': list(self.start),
            'key': list(self.key),
            'goal': list(self.goal),
            'name': self.name,
            'created_at': self.created_at,
            'version': LAYOUT_VERSION
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LayoutData':
        """Create layout data from dictionary."""
        layout = cls(
            width=data['width'],
            height=data['height'],
            obstacles=[tuple(c) for c in data.get('obstacles', [])],
            start=tuple(data['start']),
            key=tuple(data['key']),
            goal=tuple(data['goal']),
            name=data.get('name', '')
        )
        layout.created_at = data.get('created_at', layout.created_at)
        return layout

    def to_grid(self) -> Grid:
        """Build a grid, skipping obstacles stored on protected cells."""
        return create_grid(self.width, self.height, self.obstacles, self.protected_cells)

    def apply_to_config(self, config: TrainingConfig) -> TrainingConfig:
        config.start = self.start
        config.key = self.key
        config.goal = self.goal
        return config


def extract_layout(grid: Grid, config: TrainingConfig, name: str = "") -> LayoutData:
    """Capture the grid's obstacles together with the config's start/key/goal."""
    return LayoutData(
        width=grid.width,
        height=grid.height,
        obstacles=grid.get_obstacles(),
        start=config.start,
        key=config.key,
        goal=config.goal,
        name=name
    )


def save_layout(layout: LayoutData, filepath: str) -> bool:
    """Save layout data to a JSON file."""
    try:
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filepath, 'w') as f:
            json.dump(layout.to_dict(), f, indent=2)
        logger.info("Obstacles saved to %s", filepath)
        return True
    except OSError as e:
        logger.error("Error saving layout: %s", e)
        return False


def load_layout(filepath: str) -> Optional[LayoutData]:
    """Load layout data from a JSON file, None if missing or malformed."""
    if not os.path.exists(filepath):
        logger.warning("No saved obstacle layout at %s", filepath)
        return None

    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
        layout = LayoutData.from_dict(data)
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.error("Error loading layout: %s", e)
        return None

    logger.info("Loaded %d obstacles from %s", len(layout.obstacles), filepath)
    return layout
