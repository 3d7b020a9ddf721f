"""
Core modules for Gas Bottle Tracker.

This package contains the statistics engine, efficiency rating,
period reports, data transfer and the error taxonomy.
"""
