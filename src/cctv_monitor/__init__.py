"""CCTV event monitor: alarm event storage, snapshot-to-video correlation, and retention."""
