"""Service layer: workflow logic and external provider clients."""
