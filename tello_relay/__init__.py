"""Tello video relay service."""
