"""Marketplace client, sync services and the background scheduler."""
