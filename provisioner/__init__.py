"""Posit host provisioner — multi-version R / Python / Quarto plus a Posit server product."""

__version__ = "0.1.0"
