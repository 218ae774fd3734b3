"""Delivery reception quality-control service."""
