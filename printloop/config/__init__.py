"""Machine limits and heuristic thresholds shared by the G-code stages."""
