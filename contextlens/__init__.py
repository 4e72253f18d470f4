"""ContextLens: local sensemaking layer for personal activity capture.

Turns raw window and file-system observations into a private, classified
timeline of context events.
"""

__version__ = "0.1.0"
