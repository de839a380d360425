"""
jfp — prompt registry client and skill synchronizer.
"""

__version__ = "0.1.0"
