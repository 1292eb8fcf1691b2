"""
Stageline - dependency-aware stage scheduling engine.
"""

__version__ = "0.1.0"
