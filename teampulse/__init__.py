"""
TeamPulse - A team sentiment tracking service.

This package provides a small web service for recording how team members feel
(happy, neutral or sad) and turning those records into dashboard statistics
and trend series.
"""

__version__ = "0.1.0"
