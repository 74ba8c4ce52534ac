"""Payload encoders and decoders for the client side of the TDS protocol."""

__version__ = "0.1.0"

__all__ = ["headers", "login", "ntlm", "prelogin", "tran", "tvp", "wire"]