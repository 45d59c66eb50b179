"""twinpane: background job engine of the dual-pane file manager."""

__version__ = "0.1.0"
