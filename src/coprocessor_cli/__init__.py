"""Bootstrap, register and deploy Cartesi coprocessor programs."""

__version__ = "0.1.0"
