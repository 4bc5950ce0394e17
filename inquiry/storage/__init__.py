"""Blob storage for node image assets."""
