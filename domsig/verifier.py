import logging
from base64 import b64decode
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, List, Optional, Tuple, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature as CryptographyInvalidSignature
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa, utils
from cryptography.hazmat.primitives.asymmetric.padding import MGF1, PSS, AsymmetricPadding, PKCS1v15
from cryptography.hazmat.primitives.serialization import load_der_public_key, load_pem_public_key
from lxml import etree
from OpenSSL.crypto import X509

from .algorithms import CanonicalizationMethod, DigestAlgorithm, SignatureMethod, TransformMethod
from .algorithms import digest_algorithm_implementations
from .document import Document
from .exceptions import DomSigException, InvalidArgument, InvalidDigest, InvalidInput, InvalidSignature
from .idattr import propagate_id_attribute
from .processor import XMLSignatureProcessor
from .util import bits_to_bytes_unit, bytes_to_long, ensure_bytes, namespaces

logger = logging.getLogger(__name__)

PublicKey = Union[rsa.RSAPublicKey, dsa.DSAPublicKey, ec.EllipticCurvePublicKey]


@dataclass(frozen=True)
class ValidationConfiguration:
    """
    A container holding settings that will be used to assert properties of the signatures being validated.
    """

    signature_methods: FrozenSet[SignatureMethod] = frozenset(sm for sm in SignatureMethod if "SHA1" not in sm.name)
    """
    Set of acceptable signature methods (signature algorithms). Any signature generated using an algorithm not listed
    here will fail validation.
    """

    digest_algorithms: FrozenSet[DigestAlgorithm] = frozenset(da for da in DigestAlgorithm if "SHA1" not in da.name)
    """
    Set of acceptable digest algorithms. Any reference digested using an algorithm not listed here will fail
    validation.
    """


@dataclass(frozen=True)
class ReferenceResult:
    """
    Validation outcome for one ``ds:Reference`` of a signature.
    """

    index: int
    uri: Optional[str]
    digest_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class SignatureResult:
    """
    Validation outcome for one ``ds:Signature`` element. A signature is valid when its signature value verifies
    against the SignedInfo element and every reference digest matches.
    """

    signature_xml: etree._Element
    "The signature element that was validated"

    signature_value_valid: bool
    "Whether the SignatureValue verifies against the canonicalized SignedInfo with the resolved key"

    references: List[ReferenceResult] = field(default_factory=list)

    error: Optional[str] = None
    "The first error met while validating this signature, if any"

    @property
    def valid(self) -> bool:
        return (
            self.error is None
            and self.signature_value_valid
            and len(self.references) > 0
            and all(r.digest_valid for r in self.references)
        )


@dataclass(frozen=True)
class ValidationReport:
    """
    Structured result of :meth:`XMLVerifier.validate_with_diagnostics`.
    """

    signatures: List[SignatureResult]

    @property
    def valid(self) -> bool:
        "True if at least one signature was found and all signatures are valid"
        return len(self.signatures) > 0 and all(s.valid for s in self.signatures)


def load_public_key(public_key) -> PublicKey:
    """
    Coerce **public_key** into a cryptography public key object. Accepts public key objects, PEM or DER encoded public
    keys, and X.509 certificates (as :class:`OpenSSL.crypto.X509` or :class:`cryptography.x509.Certificate`).
    """
    if isinstance(public_key, X509):
        return public_key.get_pubkey().to_cryptography_key()  # type: ignore
    if isinstance(public_key, x509.Certificate):
        return public_key.public_key()  # type: ignore
    if isinstance(public_key, (str, bytes)):
        data = ensure_bytes(public_key)
        try:
            if data.lstrip().startswith(b"-----BEGIN CERTIFICATE-----"):
                return x509.load_pem_x509_certificate(data).public_key()  # type: ignore
            if data.lstrip().startswith(b"-----"):
                return load_pem_public_key(data)  # type: ignore
            return load_der_public_key(data)  # type: ignore
        except ValueError as e:
            raise InvalidArgument(f"Unable to load public key: {e}") from e
    if isinstance(public_key, (rsa.RSAPrivateKey, dsa.DSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise InvalidArgument("Expected a public key, got a private key")
    return public_key


def preset_key_resolver(public_key) -> Callable[[etree._Element], PublicKey]:
    """
    Return a key resolver that always yields **public_key**, whatever the KeyInfo of the signature says.
    """
    key = load_public_key(public_key)

    def resolve(signature):
        return key

    return resolve


class XMLVerifier(XMLSignatureProcessor):
    """
    Create a new XML Signature Verifier object, which can be used to validate the signatures of multiple documents.

    Validation proves that each signature was made by the holder of the private key matching the public key supplied
    by the caller. KeyInfo content (key names, certificates, key values) is never used to select the key, and no
    certificate chain of trust is established.

    :param config:
        A :class:`ValidationConfiguration` object.
    :param id_attributes:
        Names of the attributes to search (in order) when resolving a reference URI against a document whose ID
        attributes have not been flagged, e.g. one that was just parsed. Defaults to ``Id``, ``ID``, ``id``,
        ``xml:id``.
    """

    _default_reference_c14n_method = CanonicalizationMethod.CANONICAL_XML_1_0

    def __init__(
        self,
        config: ValidationConfiguration = ValidationConfiguration(),
        id_attributes: Optional[Tuple[str, ...]] = None,
    ):
        self.config = config
        if id_attributes is not None:
            self.id_attributes = tuple(id_attributes)

    def validate(self, document: Document, public_key: Any) -> bool:
        """
        Validate every ``ds:Signature`` element in **document** with **public_key** and return True only if there is
        at least one signature and all of them are valid.

        Signatures are checked in document order and checking stops at the first invalid one, so a later signature is
        never looked at once an earlier one fails. Use :meth:`validate_with_diagnostics` to check them all.

        Tampered content, a wrong key and a malformed signature all yield False; they can only be told apart through
        DEBUG logging or :meth:`validate_with_diagnostics`.

        :raises: :class:`domsig.exceptions.InvalidArgument` if **document** or **public_key** is missing.
        """
        signatures, key_resolver = self._prepare(document, public_key)
        if len(signatures) == 0:
            logger.debug("Cannot find Signature element")
            return False
        for signature in signatures:
            if not self.validate_signature(document, signature, key_resolver=key_resolver):
                return False
        return True

    def validate_with_diagnostics(self, document: Document, public_key: Any) -> ValidationReport:
        """
        Validate every ``ds:Signature`` element in **document**, without stopping at the first failure, and report the
        signature value and reference digest validity of each.

        :raises: :class:`domsig.exceptions.InvalidArgument` if **document** or **public_key** is missing.
        """
        signatures, key_resolver = self._prepare(document, public_key)
        if len(signatures) == 0:
            logger.debug("Cannot find Signature element")
        return ValidationReport(
            signatures=[self._check_signature(document, signature, key_resolver) for signature in signatures]
        )

    def validate_signature(
        self,
        document: Document,
        signature: etree._Element,
        public_key: Any = None,
        key_resolver: Optional[Callable[[etree._Element], Any]] = None,
    ) -> bool:
        """
        Validate a single ``ds:Signature`` element of **document**. The key is either **public_key** or whatever
        **key_resolver** returns when called with the signature element.
        """
        if document is None or signature is None:
            raise InvalidArgument("Document and signature element are required")
        if key_resolver is None:
            if public_key is None:
                raise InvalidArgument("Public key cannot be None")
            key_resolver = preset_key_resolver(public_key)
        result = self._check_signature(document, signature, key_resolver)
        return result.valid

    def _prepare(self, document, public_key):
        if document is None or document.root is None:
            raise InvalidArgument("Signed document cannot be None")
        if public_key is None:
            raise InvalidArgument("Public key cannot be None")
        key_resolver = preset_key_resolver(public_key)
        propagate_id_attribute(document, document.root, document, document.root)
        return document.signatures(), key_resolver

    def _check_signature(self, document: Document, signature: etree._Element, key_resolver) -> SignatureResult:
        try:
            signed_info = self._find(signature, "SignedInfo")
            signature_value_valid = self._check_signature_value(signature, signed_info, key_resolver)
        except (DomSigException, CryptographyInvalidSignature, ValueError, TypeError) as e:
            logger.debug("Verification failed: %s", e)
            return SignatureResult(signature_xml=signature, signature_value_valid=False, error=str(e))

        references = []
        for index, reference in enumerate(self._findall(signed_info, "Reference")):
            references.append(self._check_reference(document, signature, reference, index))

        result = SignatureResult(
            signature_xml=signature, signature_value_valid=signature_value_valid, references=references
        )
        if not result.valid and logger.isEnabledFor(logging.DEBUG):
            logger.debug("Signature validation status: %s", signature_value_valid)
            for ref in references:
                logger.debug("[Ref index=%d:uri=%s] validity status: %s", ref.index, ref.uri, ref.digest_valid)
            if not references:
                logger.debug("Signature has no references")
        return result

    def _check_signature_value(self, signature, signed_info, key_resolver) -> bool:
        c14n_method = self._find(signed_info, "CanonicalizationMethod")
        c14n_algorithm = CanonicalizationMethod(c14n_method.get("Algorithm"))
        inclusive_ns_prefixes = self._get_inclusive_ns_prefixes(c14n_method)
        signature_method = self._find(signed_info, "SignatureMethod")
        signature_alg = SignatureMethod(signature_method.get("Algorithm"))
        if signature_alg not in self.config.signature_methods:
            raise InvalidInput(f"Signature method {signature_alg.name} forbidden by configuration")
        signature_value = self._find(signature, "SignatureValue")
        raw_signature = b64decode(signature_value.text or "")
        signed_info_c14n = self._c14n(
            signed_info, algorithm=c14n_algorithm, inclusive_ns_prefixes=inclusive_ns_prefixes
        )

        key = key_resolver(signature)
        if key is None:
            raise InvalidInput("Key resolver did not return a key")
        key = load_public_key(key)
        try:
            self._verify_signature_with_pubkey(signed_info_c14n, raw_signature, key, signature_alg)
        except CryptographyInvalidSignature as e:
            logger.debug("Signature value mismatch: %s", e)
            return False
        return True

    def _check_reference(self, document, signature, reference, index) -> ReferenceResult:
        uri = reference.get("URI")
        try:
            self._verify_reference(document, signature, reference, index)
        except (DomSigException, CryptographyInvalidSignature, ValueError) as e:
            logger.debug("Reference %d (%s) failed: %s", index, uri, e)
            return ReferenceResult(index=index, uri=uri, digest_valid=False, error=str(e))
        return ReferenceResult(index=index, uri=uri, digest_valid=True)

    def _verify_reference(self, document, signature, reference, index):
        transforms = self._find(reference, "Transforms", require=False)
        digest_method_alg_name = self._find(reference, "DigestMethod").get("Algorithm")
        digest_value = self._find(reference, "DigestValue")
        digest_alg = DigestAlgorithm(digest_method_alg_name)
        if digest_alg not in self.config.digest_algorithms:
            raise InvalidInput(f"Digest algorithm {digest_alg.name} forbidden by configuration")
        payload = self._resolve_reference(document, reference.get("URI"), context=signature.getparent())
        payload_c14n = self._apply_transforms(payload, transforms_node=transforms, signature=signature)
        if b64decode(digest_value.text or "") != self._get_digest(payload_c14n, digest_alg):
            raise InvalidDigest(f"Digest mismatch for reference {index} ({reference.get('URI')})")

    def _apply_transforms(self, payload, *, transforms_node: Optional[etree._Element], signature: etree._Element):
        transforms = []
        if transforms_node is not None:
            transforms = self._findall(transforms_node, "Transform")

        enveloped = False
        c14n_algorithm, inclusive_ns_prefixes = None, None
        for transform in transforms:
            algorithm = transform.get("Algorithm")
            if algorithm == TransformMethod.ENVELOPED_SIGNATURE.value:
                enveloped = True
                continue
            c14n_algorithm = CanonicalizationMethod(algorithm)
            inclusive_ns_prefixes = self._get_inclusive_ns_prefixes(transform)

        payload = self._copy_payload(payload, signature=signature if enveloped else None)
        if c14n_algorithm is None:
            c14n_algorithm = self._default_reference_c14n_method
        return self._c14n(payload, algorithm=c14n_algorithm, inclusive_ns_prefixes=inclusive_ns_prefixes)

    def _get_inclusive_ns_prefixes(self, transform_node):
        inclusive_namespaces = transform_node.find("./ec:InclusiveNamespaces[@PrefixList]", namespaces=namespaces)
        if inclusive_namespaces is None:
            return None
        else:
            return inclusive_namespaces.get("PrefixList").split(" ")

    def _verify_signature_with_pubkey(
        self,
        signed_info_c14n: bytes,
        raw_signature: bytes,
        key: PublicKey,
        signature_alg: SignatureMethod,
    ) -> None:
        digest_alg_impl = digest_algorithm_implementations[signature_alg]()
        if signature_alg.name.startswith("ECDSA_"):
            if not isinstance(key, ec.EllipticCurvePublicKey):
                raise InvalidSignature("Public key does not match specified signature algorithm")
            dss_signature = self._encode_dss_signature(raw_signature, key.key_size)
            key.verify(dss_signature, data=signed_info_c14n, signature_algorithm=ec.ECDSA(digest_alg_impl))
        elif signature_alg.name.startswith("DSA_"):
            if not isinstance(key, dsa.DSAPublicKey):
                raise InvalidSignature("Public key does not match specified signature algorithm")
            q_bits = key.parameters().parameter_numbers().q.bit_length()
            dss_signature = self._encode_dss_signature(raw_signature, q_bits)
            key.verify(dss_signature, data=signed_info_c14n, algorithm=digest_alg_impl)
        elif signature_alg.name.startswith("RSA_") or signature_alg.name.startswith("SHA"):
            if not isinstance(key, rsa.RSAPublicKey):
                raise InvalidSignature("Public key does not match specified signature algorithm")
            if signature_alg.name.startswith("RSA_"):
                padding: AsymmetricPadding = PKCS1v15()
            else:
                padding = PSS(mgf=MGF1(algorithm=digest_alg_impl), salt_length=digest_alg_impl.digest_size)
            key.verify(raw_signature, data=signed_info_c14n, padding=padding, algorithm=digest_alg_impl)
        else:
            raise NotImplementedError()

    def _encode_dss_signature(self, raw_signature: bytes, key_size_bits: int) -> bytes:
        want_raw_signature_len = bits_to_bytes_unit(key_size_bits) * 2
        if len(raw_signature) != want_raw_signature_len:
            raise InvalidSignature(
                "Expected %d byte SignatureValue, got %d" % (want_raw_signature_len, len(raw_signature))
            )
        int_len = len(raw_signature) // 2
        r = bytes_to_long(raw_signature[:int_len])
        s = bytes_to_long(raw_signature[int_len:])
        return utils.encode_dss_signature(r, s)
