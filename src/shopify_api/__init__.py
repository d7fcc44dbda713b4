"""Shared Shopify-facing code: settings, logging, error envelope and the GraphQL client."""
