"""Airtable Edge Proxy — response schemas."""
