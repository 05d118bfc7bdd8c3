"""
Setup script for the HTTP Trace SDK

This file is kept for backward compatibility. The project uses pyproject.toml
as the primary configuration file. This setup.py will read from pyproject.toml.
"""

from setuptools import setup

# setuptools will automatically read pyproject.toml
setup()
