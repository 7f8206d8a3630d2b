"""Session orchestration and service wiring."""
