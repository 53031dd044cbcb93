"""HTTP runtime, templating and data sources for mockfly."""
