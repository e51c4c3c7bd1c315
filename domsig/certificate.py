"""
Conversion between the base64 text carried by ``ds:X509Certificate`` elements and parsed X.509 certificates.

No chain, expiry or revocation checks are done here: a parsed certificate only proves that the blob is structurally
a certificate.
"""

from typing import Union

from cryptography import x509
from OpenSSL.crypto import FILETYPE_PEM, X509, dump_certificate, load_certificate
from OpenSSL.crypto import Error as OpenSSLCryptoError

from .exceptions import CertificateFormatError, InvalidArgument
from .util import add_pem_header, ensure_bytes, strip_pem_header


def parse_certificate(base64_body: Union[str, bytes]) -> X509:
    """
    Parse a base64 certificate body, with or without PEM delimiters, into an :class:`OpenSSL.crypto.X509` object.

    :raises: :class:`domsig.exceptions.CertificateFormatError` if the body is not a single valid certificate.
    """
    if base64_body is None:
        raise InvalidArgument("Certificate body cannot be None")
    try:
        pem = add_pem_header(base64_body)
    except UnicodeDecodeError as e:
        raise CertificateFormatError(f"Certificate body is not text: {e}") from e
    if pem.count("-----BEGIN") != 1:
        raise CertificateFormatError("Expected exactly one certificate")
    try:
        return load_certificate(FILETYPE_PEM, ensure_bytes(pem))
    except (OpenSSLCryptoError, ValueError) as e:
        raise CertificateFormatError(f"Unable to parse certificate: {e}") from e


def certificate_body(cert: Union[str, bytes, X509, x509.Certificate]) -> str:
    """
    Return the bare base64 body of a certificate, as written into ``ds:X509Certificate``.

    :raises: :class:`domsig.exceptions.CertificateFormatError` if a str or bytes **cert** is not a valid certificate.
    """
    if isinstance(cert, (str, bytes)):
        cert = parse_certificate(cert)
    if isinstance(cert, x509.Certificate):
        cert = X509.from_cryptography(cert)
    if isinstance(cert, X509):
        cert = dump_certificate(FILETYPE_PEM, cert)
    return strip_pem_header(cert).strip()
