"""
Use :class:`domsig.XMLSigner` to sign a whole document, a node within a document or an element at a chosen position
with an enveloped XML Signature, and :class:`domsig.XMLVerifier` to validate every signature in a document against a
public key supplied by the caller.
"""

from .algorithms import CanonicalizationMethod, DigestAlgorithm, SignatureMethod, TransformMethod
from .certificate import certificate_body, parse_certificate
from .document import Document, new_document, parse, parse_file, serialize
from .exceptions import (
    CertificateFormatError,
    DomSigException,
    InvalidArgument,
    InvalidDigest,
    InvalidInput,
    InvalidSignature,
    ParseError,
    SigningError,
    UnsupportedAlgorithm,
)
from .idattr import propagate_id_attribute
from .processor import XMLSignatureProcessor
from .signer import SigningConfiguration, XMLSigner
from .util import namespaces
from .verifier import ReferenceResult, SignatureResult, ValidationConfiguration, ValidationReport, XMLVerifier
