"""Command-line tools for Release Radar.

- ``python -m src.cli.new_releases`` - list new albums and EPs from your
  followed, liked and saved artists.
- ``python -m src.cli`` - same as ``new_releases``.
"""
