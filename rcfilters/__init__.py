"""
Top-level package for the recent-changes filter controller.

This package exposes the core architecture (state, codecs, services, UI adapters).
Most code should import from submodules such as:
    rcfilters.core
    rcfilters.services
    rcfilters.ui
"""

__all__: list[str] = []
