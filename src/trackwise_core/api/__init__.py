"""HTTP API for Trackwise Core."""
