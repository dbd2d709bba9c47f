"""ideasignal — evidence-grounded market validation backend."""

__version__ = "0.1.0"
