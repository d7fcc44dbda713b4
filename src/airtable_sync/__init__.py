"""Shopify -> Airtable order sync worker."""
