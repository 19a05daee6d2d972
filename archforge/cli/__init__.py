"""archforge CLI — Typer-based command-line interface.

Provides the ``archforge`` command with subcommands for running the
multi-architecture pipeline, resolving the app version, listing the build
matrix, merging a collected run, and inspecting the run ledger.

All output uses Rich for formatted terminal display.
"""
