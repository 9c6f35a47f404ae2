"""
E-Sign Coordinator: signature requests against an external signing provider for approved versions.
"""

