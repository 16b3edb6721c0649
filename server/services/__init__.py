"""Sonos control services.

Everything here talks to players through ActionDispatcher; nothing keeps
state between calls apart from the read-only Registry.
"""
