"""
Distribution & acknowledgment ("read and understood") tracking for published versions.
"""

