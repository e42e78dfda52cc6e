"""
Gateway service package for the ERP data access layer.
"""
