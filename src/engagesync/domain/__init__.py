"""Domain layer: engagement model, decisions, reconciliation and the pipeline."""
