# Copyright (c) 2023-2025 Datalayer, Inc.
# Distributed under the terms of the MIT License.

"""
Zenith Nexus - shared JSON seed server over HTTP + WebSocket
"""

from .merge import deep_merge
from .state import SeedState
from .store import LoadError, SaveError, SeedStore
from .server import ZenithServer

__all__ = ["deep_merge", "LoadError", "SaveError", "SeedState", "SeedStore", "ZenithServer"]
