"""Café review insights and weekly digest service"""

__version__ = "0.3.0"
