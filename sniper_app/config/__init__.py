"""
Configuration module.

Frozen dataclass defaults, YAML settings loading and validation.
"""
