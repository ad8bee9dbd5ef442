"""FamilyHub authentication and session service."""

__version__ = "0.3.0"
