"""Cross-cutting infrastructure: exceptions, logging, run notifications."""
