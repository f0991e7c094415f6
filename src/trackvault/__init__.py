"""trackvault: a GPS track library with images and metadata."""

__version__ = "0.1.0"
