"""Settings and backend client registry for breaking circular imports.

This module holds the startup settings and the fal client so that routes
can import them without causing circular imports with the main module.
"""

# Global instances - set by main.py during initialization
settings = None
client = None


def set_settings(settings_instance):
    """Set the global settings instance."""
    global settings
    settings = settings_instance


def get_settings():
    """Get the global settings instance."""
    if settings is None:
        raise RuntimeError("Settings not initialized. Did you call set_settings?")
    return settings


def set_client(client_instance):
    """Set the global fal client instance."""
    global client
    client = client_instance


def get_client():
    """Get the global fal client instance."""
    if client is None:
        raise RuntimeError("Fal client not initialized. Did you call set_client?")
    return client
