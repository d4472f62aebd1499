"""
bonscan - Bulgarian receipt extraction & categorization pipeline.
"""

__version__ = "0.1.0"
