"""Editor settings sync: keep packages, keymaps, styles and settings in step
with a remote settings server."""

__version__ = "0.4.0"
