"""
Services around the core models: persistence, location/history, telemetry,
result fetching and the synchronization controller.
"""
