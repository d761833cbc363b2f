"""Flask web interface for the code generation bridge."""
