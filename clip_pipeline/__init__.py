"""
Clip Pipeline
=============
Discovers popular Twitch clips per channel, downloads the best ones, analyzes
them with an AI provider and gates them for upload.

Entry points:
    - ``clip_pipeline.app.build_pipeline`` wires every component from settings
    - ``python -m clip_pipeline`` runs the command line interface
"""

__version__ = "1.0.0"
