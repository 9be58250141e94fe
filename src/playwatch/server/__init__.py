"""HTTP server for the playwatch service."""
