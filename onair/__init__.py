"""
OnAir: live radio broadcast server with on-air effect splicing.
"""

__version__ = "0.1.0"
