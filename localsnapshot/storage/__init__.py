# MIT License
# Copyright (c) 2025 Hashborn

from .db import KeyValueStore

__all__ = ["KeyValueStore"]
