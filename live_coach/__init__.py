"""Live conversation coach: speaker-attributed transcript correlation and AI context dispatch."""
