"""AuroDiary: photos and notes in, illustrated diary entries out."""

__version__ = "1.0.0"
