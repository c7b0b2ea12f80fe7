"""
Gateway data models.
"""
