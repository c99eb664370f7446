"""Service layer: GitHub access, usage ledger, billing and the webhook pipeline."""
