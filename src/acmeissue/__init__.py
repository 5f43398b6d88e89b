"""acmeissue: an ACME (RFC 8555) certificate issuance client."""

__version__ = "1.0.0"
