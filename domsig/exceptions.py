"""
domsig exception types.
"""

import cryptography.exceptions


class DomSigException(Exception):
    pass


class InvalidSignature(cryptography.exceptions.InvalidSignature, DomSigException):
    """
    Raised when signature validation fails.
    """


class InvalidDigest(InvalidSignature):
    """
    Raised when digest validation fails (causing the signature to be untrusted).
    """


class InvalidInput(ValueError, DomSigException):
    pass


class InvalidArgument(InvalidInput):
    """
    Raised when a required argument (document, node to sign, key) is missing or does not fit the call.
    """


class UnsupportedAlgorithm(InvalidInput):
    """
    Raised when a digest, signature, canonicalization or transform identifier is not recognized.
    """


class ParseError(InvalidInput):
    """
    Raised when XML input is malformed or carries a DOCTYPE or entity declaration.
    """


class CertificateFormatError(InvalidInput):
    """
    Raised when a certificate blob cannot be decoded as a single X.509 certificate.
    """


class SigningError(DomSigException):
    """
    Raised when the crypto provider fails to produce a signature value, e.g. because the key cannot be loaded or does
    not match the signature method.
    """
