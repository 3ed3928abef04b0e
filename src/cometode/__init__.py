"""Cometode: CIR spaced repetition scheduling for coding interview problems."""

__version__ = "0.4.0"
