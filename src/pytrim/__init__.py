"""pytrim - working-set trimmer for Windows processes."""

__version__ = "0.1.0"
