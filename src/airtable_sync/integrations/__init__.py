"""External service integrations."""

from .airtable import AirtableClient

__all__ = ["AirtableClient"]
