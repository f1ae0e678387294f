from .tracker import RunTracker

__all__ = ["RunTracker"]
