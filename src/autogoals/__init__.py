# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""AutoGoals: run an AI coding agent through a list of dependent goals."""

__version__ = "0.1.0"
