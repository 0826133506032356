"""Service layer: query translation, envelopes, fixtures and table operations."""
