"""Board Image Tools: sort, align and stitch images on a whiteboard."""

__version__ = "1.0.0"
