"""Query generation, execution, and error taxonomy services."""
