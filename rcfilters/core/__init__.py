"""
Core domain objects: taxonomy, filter state, diff/query codecs and the live models.
"""
