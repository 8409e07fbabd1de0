"""
Gibber: a line-oriented chat and friendship service over plain TCP.
"""
__version__ = "0.1.0"
