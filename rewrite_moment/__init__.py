"""
Rewrite Moment generation worker.

Turns a photo (or two) plus creative picks into a short generated video by
orchestrating image-compose and image-to-video vendors behind one
submit / poll contract.
"""

__version__ = "0.1.0"
