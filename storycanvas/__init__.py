"""
StoryCanvas
===========

Storyboard canvas engine: chains of image cards feeding player cards that
replay them as slideshows, with long-running generation jobs tracked against
a remote workflow backend.
"""

__version__ = "0.1.0"
