"""Service layer helpers (persistence gateways, save coordination, settings)."""
