"""Offline-first client for the Tabi travel itinerary service."""
