"""Wrapped volume tool: protocol vocabulary, argv builders and the process runner.

The tool is a platform-specific executable; everything here talks to it only
through argument vectors, exit codes and the first line of stdout.
"""
