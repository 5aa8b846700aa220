"""NiceGUI glue: per-client event bus, store bridge and loading panel."""
