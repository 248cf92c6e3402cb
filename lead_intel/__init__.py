"""Call lead-intelligence pipeline: recording -> transcript -> lead analysis."""
