"""Service layer: release pipeline stages and orchestration."""
