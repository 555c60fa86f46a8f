"""Worker buffer transfer benchmarking.

This package compares two ways of handing a large sample buffer to an isolated
worker process: sending the buffer itself with every request, or pointing the
worker at shared memory regions allocated up front.
"""

from __future__ import annotations
