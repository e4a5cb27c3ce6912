"""View/state layer.

This package owns the materialized order views and the only code allowed
to replace their contents: a full reload, triggered either explicitly or
by a relevant change-feed event.
"""
