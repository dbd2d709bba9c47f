"""Market validation pipeline: evidence fan-out, hypothesis batch and report synthesis."""
