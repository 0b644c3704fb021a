"""
Feature Contracts

Validate dataset statistics against feature schemas, and infer or widen
schemas from statistics.
"""

__version__ = "0.1.0"
