"""Test fixtures for judgelink tests.

Provides:
- An in-memory LinkStore with failure injection
- Sample judges and cases
"""

from .records import *
from .store import *
