"""
External document register: standards, regulations and client documents the site relies on but does not author.
"""
