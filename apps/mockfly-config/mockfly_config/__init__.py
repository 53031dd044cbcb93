"""Configuration loading and route-default resolution for mockfly."""
