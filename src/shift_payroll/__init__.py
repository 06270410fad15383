"""Pay period boundary, shift pay and tax withholding engine."""

__version__ = "0.1.0"
