"""Photostack groups photo library assets into stacks and picks each stack's parent.

`stack_assets` is the one-shot entry point; `StackEngine` keeps parsed
criteria and a regex cache across runs.
"""

from importlib.metadata import PackageNotFoundError, version

from photostack.stacking import Asset, StackEngine, parse_assets, stack_assets

try:
    __version__ = version("photostack")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["Asset", "StackEngine", "parse_assets", "stack_assets", "__version__"]
