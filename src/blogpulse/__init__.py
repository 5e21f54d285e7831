"""blogpulse - traffic, session and engagement analytics for the blog platform."""

__version__ = "0.1.0"
