"""HTTP API: chat turns, bulk uploads, action catalog and health."""
