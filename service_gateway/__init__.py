"""
Access Gateway service.
"""
