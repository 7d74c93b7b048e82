# MIT License
# Copyright (c) 2025 Hashborn

"""
Local snapshot tooling: build, merge, export and inspect local snapshot stores.
"""

__version__ = "1.0.0"
