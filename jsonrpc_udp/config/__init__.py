"""Settings models and YAML configuration loading."""
