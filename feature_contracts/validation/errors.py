"""
Feature Contracts - Error Taxonomy

Every failure is terminal for the call that raised it: no partial report or
partial schema is ever returned alongside an error.
"""


class FeatureContractsError(Exception):
    """Base class for all errors raised by feature_contracts."""


class ParseError(FeatureContractsError):
    """Raised when an input document or record is malformed."""


class StateError(FeatureContractsError):
    """Raised when a schema is internally inconsistent or a rule fails mid-comparison."""


class SerializationError(FeatureContractsError):
    """Raised when an output value cannot be encoded."""
