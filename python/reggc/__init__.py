"""Delete registry images no running pod references, then run registry GC."""

__version__ = "0.1.0"
