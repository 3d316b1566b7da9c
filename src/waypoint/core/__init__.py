"""Core primitives shared by every waypoint layer: errors, logging, config, hashing, time."""
