"""Provider rotation and tool-augmented dialogue routing."""
