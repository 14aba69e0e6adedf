# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""didvault CLI - identity and hash management from the shell."""

from .main import app, main

__all__ = ["main", "app"]
