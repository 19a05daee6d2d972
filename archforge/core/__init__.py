"""Run coordination: version resolution, fan-out, digest collection, merge."""
