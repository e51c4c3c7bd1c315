import logging
from base64 import b64encode
from dataclasses import dataclass
from typing import Any, Optional, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm as CryptographyUnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa, utils
from cryptography.hazmat.primitives.asymmetric.padding import MGF1, PSS, PKCS1v15
from cryptography.hazmat.primitives.serialization import load_pem_private_key
from lxml.etree import Element, SubElement, _Element
from OpenSSL.crypto import X509

from .algorithms import (
    CanonicalizationMethod,
    DigestAlgorithm,
    SignatureMethod,
    TransformMethod,
    digest_algorithm_implementations,
)
from .certificate import certificate_body
from .document import Document, _tostring, new_document
from .exceptions import InvalidArgument, SigningError, UnsupportedAlgorithm
from .idattr import propagate_id_attribute
from .processor import XMLSignatureProcessor
from .util import bits_to_bytes_unit, ds_tag, dsig11_tag, ensure_bytes, is_element, long_to_bytes, namespaces

logger = logging.getLogger(__name__)

PrivateKey = Union[str, bytes, rsa.RSAPrivateKey, dsa.DSAPrivateKey, ec.EllipticCurvePrivateKey]
Certificate = Union[str, bytes, X509, x509.Certificate]


@dataclass(frozen=True)
class SigningConfiguration:
    """
    A container holding settings that shape the signatures produced by :class:`XMLSigner`.
    """

    include_key_info: bool = True
    """
    If ``True``, the KeyInfo element carries the KeyName (if given), the X.509 certificate (if given) and the public key
    value, in that order. If ``False``, only the KeyName is written, and KeyInfo is left out entirely when no key name
    is given. Validation never relies on KeyInfo, so turning this off only removes hints for the recipient.
    """


@dataclass
class SigningSettings:
    key: Any
    key_name: Optional[str]
    cert: Optional[Certificate]


class XMLSigner(XMLSignatureProcessor):
    """
    Create a new XML Signature Signer object, which can be used to hold configuration information and sign multiple
    documents. All signatures are enveloped: the ``ds:Signature`` element is inserted inside the content it signs, and
    its single reference carries the enveloped signature and exclusive canonicalization transforms.

    :param signature_algorithm:
        Algorithm that will be used to generate the signature. See :class:`SignatureMethod` for the list of algorithm
        IDs supported.
    :param digest_algorithm:
        Algorithm that will be used to hash the data during signature generation. See :class:`DigestAlgorithm` for the
        list of algorithm IDs supported.
    :param c14n_algorithm:
        Algorithm that will be used to canonicalize the SignedInfo element before it is signed. See
        :class:`CanonicalizationMethod` for the list of algorithm IDs supported.
    :param config:
        A :class:`SigningConfiguration` object.
    """

    def __init__(
        self,
        signature_algorithm: Union[SignatureMethod, str] = SignatureMethod.RSA_SHA256,
        digest_algorithm: Union[DigestAlgorithm, str] = DigestAlgorithm.SHA256,
        c14n_algorithm: Union[CanonicalizationMethod, str] = CanonicalizationMethod.CANONICAL_XML_1_0,
        config: SigningConfiguration = SigningConfiguration(),
    ):
        self.sign_alg = SignatureMethod.from_identifier(signature_algorithm)
        self.digest_alg = DigestAlgorithm.from_identifier(digest_algorithm)
        self.check_deprecated_methods()
        self.c14n_alg = CanonicalizationMethod.from_identifier(c14n_algorithm)
        self.config = config
        self.namespaces = dict(ds=namespaces.ds)

    def check_deprecated_methods(self):
        if "SHA1" in self.sign_alg.name or "SHA1" in self.digest_alg.name:
            msg = "SHA1-based algorithms are not supported in the default configuration because they are not secure"
            raise UnsupportedAlgorithm(msg)

    def sign_document(
        self,
        document: Document,
        *,
        key: Optional[PrivateKey] = None,
        passphrase: Optional[bytes] = None,
        cert: Optional[Certificate] = None,
        reference_uri: str = "",
        key_name: Optional[str] = None,
    ) -> Document:
        """
        Sign the root element of **document** in place and return the document. The signature is appended as the last
        child of the root element.

        :param key:
            Private key to sign with. This can be a string/bytes containing a PEM-formatted key, or a
            :class:`cryptography.hazmat.primitives.asymmetric.rsa.RSAPrivateKey`,
            :class:`cryptography.hazmat.primitives.asymmetric.dsa.DSAPrivateKey`, or
            :class:`cryptography.hazmat.primitives.asymmetric.ec.EllipticCurvePrivateKey` object. The public half is
            written to KeyInfo.
        :param passphrase: Passphrase to use to decrypt the key, if any.
        :param cert:
            X.509 certificate to embed in KeyInfo, as a PEM string, a bare base64 body, an :class:`OpenSSL.crypto.X509`
            object or a :class:`cryptography.x509.Certificate` object.
        :param reference_uri:
            Reference URI. ``""`` (the default) signs the nearest element carrying an ID attribute, or the whole
            document. ``"#value"`` (or ``"value"``) signs the element whose ID attribute equals ``value``.
        :param key_name: Add a KeyName element in the KeyInfo element that may be used by the signer to communicate a
            key identifier to the recipient.
        """
        if document is None or document.root is None:
            raise InvalidArgument("Document to be signed cannot be empty")
        self._log_document(document)
        self._sign(document, document.root, key, passphrase, cert, reference_uri, key_name)
        return document

    def sign_node(
        self,
        document: Document,
        node: _Element,
        *,
        key: Optional[PrivateKey] = None,
        passphrase: Optional[bytes] = None,
        cert: Optional[Certificate] = None,
        reference_uri: str = "",
        key_name: Optional[str] = None,
    ) -> Document:
        """
        Sign **node**, an element anywhere in **document**, and return the document.

        The node is copied into a standalone document and signed there, so that the signature is computed over the
        node alone. The signed copy is then imported back and takes the original node's place (same parent, same
        position). The node's ID attribute flag is carried across both copies. See :meth:`sign_document` for the
        remaining parameters.

        An empty **reference_uri** designates the nearest element carrying an ID attribute. Once the copy is back in
        the document, that is the node itself only if it carries an ID or is the root element, so an empty URI is
        refused for any other node.
        """
        if document is None or document.root is None:
            raise InvalidArgument("Document to be signed cannot be empty")
        if node is None:
            raise InvalidArgument("Node to be signed cannot be None")
        if not is_element(node):
            raise InvalidArgument("Node to be signed must be an XML element")
        if not document.contains(node):
            raise InvalidArgument("Node to be signed does not belong to the document")
        if not reference_uri and node is not document.root and not self._has_id(document, node):
            raise InvalidArgument("An empty reference URI can only sign the root element or an element with an ID")
        self._log_document(document)

        parent = node.getparent()

        standalone = new_document()
        standalone.set_root(standalone.import_node(node, deep=True))
        propagate_id_attribute(document, node, standalone, standalone.root)

        self._sign(standalone, standalone.root, key, passphrase, cert, reference_uri, key_name)

        signed_node = document.import_node(standalone.root, deep=True)
        propagate_id_attribute(standalone, standalone.root, document, signed_node)
        document.replace_child(parent, node, signed_node)
        return document

    def sign_element(
        self,
        document: Document,
        element: _Element,
        *,
        next_sibling: Optional[_Element] = None,
        key: Optional[PrivateKey] = None,
        passphrase: Optional[bytes] = None,
        cert: Optional[Certificate] = None,
        reference_uri: str = "",
        key_name: Optional[str] = None,
    ) -> _Element:
        """
        Sign in place and insert the signature into **element**, just before its child **next_sibling** (or as the
        last child if **next_sibling** is None). Unlike :meth:`sign_node`, no copy is made: use this when the element
        already carries its ID attribute and the caller manages the document structure. Returns the ``ds:Signature``
        element. See :meth:`sign_document` for the remaining parameters.
        """
        if document is None or document.root is None:
            raise InvalidArgument("Document to be signed cannot be empty")
        if element is None:
            raise InvalidArgument("Element to be signed cannot be None")
        if not is_element(element) or not document.contains(element):
            raise InvalidArgument("Element to be signed must be an XML element of the document")
        if next_sibling is not None and next_sibling.getparent() is not element:
            raise InvalidArgument("The next sibling of the signature must be a child of the element to be signed")
        return self._sign(
            document, element, key, passphrase, cert, reference_uri, key_name, next_sibling=next_sibling
        )

    def _log_document(self, document: Document):
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Document to be signed: %s", _tostring(document.root))

    def _load_key(self, key, passphrase):
        if key is None:
            raise InvalidArgument('Parameter "key" is required')
        if isinstance(key, (str, bytes)):
            try:
                key = load_pem_private_key(ensure_bytes(key), password=passphrase)
            except (ValueError, TypeError, CryptographyUnsupportedAlgorithm) as e:
                raise SigningError(f"Unable to load private key: {e}") from e
        if self.sign_alg.name.startswith("ECDSA_"):
            expected_type: Any = ec.EllipticCurvePrivateKey
        elif self.sign_alg.name.startswith("DSA_"):
            expected_type = dsa.DSAPrivateKey
        else:
            expected_type = rsa.RSAPrivateKey
        if not isinstance(key, expected_type):
            raise SigningError(f"Key of type {type(key).__name__} cannot be used with {self.sign_alg.name}")
        if isinstance(key, ec.EllipticCurvePrivateKey) and self.config.include_key_info:
            if key.curve.name not in self.known_ecdsa_curve_oids:
                raise SigningError(f"Unsupported curve {key.curve.name}")
        return key

    def _sign(self, document, target, key, passphrase, cert, reference_uri, key_name, next_sibling=None):
        if reference_uri is None:
            reference_uri = ""
        signing_settings = SigningSettings(key=self._load_key(key, passphrase), key_name=key_name, cert=cert)

        payload = self._resolve_reference(document, reference_uri, context=target)
        if reference_uri and not reference_uri.startswith("#"):
            reference_uri = "#" + reference_uri
        # The signature does not exist yet, so the enveloped signature transform has nothing to excise here
        payload_c14n = self._c14n(
            self._copy_payload(payload), algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0
        )
        digest = self._get_digest(payload_c14n, algorithm=self.digest_alg)

        sig_root = Element(ds_tag("Signature"), nsmap=self.namespaces)
        signed_info = self._build_signed_info(sig_root, reference_uri, digest)
        signature_value_node = SubElement(sig_root, ds_tag("SignatureValue"))
        self._add_key_info(sig_root, signing_settings)

        if next_sibling is None:
            target.append(sig_root)
        else:
            target.insert(target.index(next_sibling), sig_root)

        signed_info_c14n = self._c14n(signed_info, algorithm=self.c14n_alg)
        try:
            signature = self._compute_signature(signing_settings.key, signed_info_c14n)
        except SigningError:
            target.remove(sig_root)
            raise
        signature_value_node.text = b64encode(signature).decode()
        return sig_root

    def _compute_signature(self, key, signed_info_c14n: bytes) -> bytes:
        hash_alg = digest_algorithm_implementations[self.sign_alg]()
        try:
            if self.sign_alg.name.startswith("DSA_"):
                signature = key.sign(signed_info_c14n, algorithm=hash_alg)
            elif self.sign_alg.name.startswith("ECDSA_"):
                signature = key.sign(signed_info_c14n, signature_algorithm=ec.ECDSA(algorithm=hash_alg))
            elif self.sign_alg.name.startswith("RSA_"):
                signature = key.sign(signed_info_c14n, padding=PKCS1v15(), algorithm=hash_alg)
            elif self.sign_alg.name.startswith("SHA"):
                # See https://www.rfc-editor.org/rfc/rfc9231.html#section-2.3.10
                padding = PSS(mgf=MGF1(algorithm=hash_alg), salt_length=hash_alg.digest_size)
                signature = key.sign(signed_info_c14n, padding=padding, algorithm=hash_alg)
            else:
                raise NotImplementedError()
        except (ValueError, TypeError, CryptographyUnsupportedAlgorithm) as e:
            raise SigningError(f"Unable to sign with {self.sign_alg.name}: {e}") from e
        if self.sign_alg.name.startswith("DSA_") or self.sign_alg.name.startswith("ECDSA_"):
            # Note: The output of the DSA and ECDSA signers is a DER-encoded ASN.1 sequence of two DER integers.
            (r, s) = utils.decode_dss_signature(signature)
            if isinstance(key, dsa.DSAPrivateKey):
                int_len = bits_to_bytes_unit(key.parameters().parameter_numbers().q.bit_length())
            else:
                int_len = bits_to_bytes_unit(key.key_size)
            signature = long_to_bytes(r, blocksize=int_len) + long_to_bytes(s, blocksize=int_len)
        return signature

    def _build_signed_info(self, sig_root, reference_uri: str, digest: bytes):
        signed_info = SubElement(sig_root, ds_tag("SignedInfo"), nsmap=self.namespaces)
        SubElement(signed_info, ds_tag("CanonicalizationMethod"), Algorithm=self.c14n_alg.value)
        SubElement(signed_info, ds_tag("SignatureMethod"), Algorithm=self.sign_alg.value)
        reference_node = SubElement(signed_info, ds_tag("Reference"), URI=reference_uri)
        transforms = SubElement(reference_node, ds_tag("Transforms"))
        SubElement(transforms, ds_tag("Transform"), Algorithm=TransformMethod.ENVELOPED_SIGNATURE.value)
        SubElement(
            transforms, ds_tag("Transform"), Algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0.value
        )
        SubElement(reference_node, ds_tag("DigestMethod"), Algorithm=self.digest_alg.value)
        digest_value = SubElement(reference_node, ds_tag("DigestValue"))
        digest_value.text = b64encode(digest).decode()
        return signed_info

    def _add_key_info(self, sig_root, signing_settings: SigningSettings):
        include_key_info = self.config.include_key_info
        if signing_settings.key_name is None and not include_key_info:
            return
        key_info = SubElement(sig_root, ds_tag("KeyInfo"))
        if signing_settings.key_name is not None:
            keyname = SubElement(key_info, ds_tag("KeyName"))
            keyname.text = signing_settings.key_name
        if not include_key_info:
            return
        if signing_settings.cert is not None:
            x509_data = SubElement(key_info, ds_tag("X509Data"))
            x509_certificate = SubElement(x509_data, ds_tag("X509Certificate"))
            x509_certificate.text = certificate_body(signing_settings.cert)
        self._serialize_key_value(signing_settings.key, key_info)

    def _serialize_key_value(self, key, key_info_node):
        """
        Add the public components of the key to the signature (see https://www.w3.org/TR/xmldsig-core2/#sec-KeyValue).
        """
        key_value = SubElement(key_info_node, ds_tag("KeyValue"))
        if self.sign_alg.name.startswith("RSA_") or self.sign_alg.name.startswith("SHA"):
            rsa_key_value = SubElement(key_value, ds_tag("RSAKeyValue"))
            modulus = SubElement(rsa_key_value, ds_tag("Modulus"))
            modulus.text = b64encode(long_to_bytes(key.public_key().public_numbers().n)).decode()
            exponent = SubElement(rsa_key_value, ds_tag("Exponent"))
            exponent.text = b64encode(long_to_bytes(key.public_key().public_numbers().e)).decode()
        elif self.sign_alg.name.startswith("DSA_"):
            dsa_key_value = SubElement(key_value, ds_tag("DSAKeyValue"))
            for field in "p", "q", "g", "y":
                e = SubElement(dsa_key_value, ds_tag(field.upper()))

                if field == "y":
                    key_params = key.public_key().public_numbers()
                else:
                    key_params = key.parameters().parameter_numbers()

                e.text = b64encode(long_to_bytes(getattr(key_params, field))).decode()
        elif self.sign_alg.name.startswith("ECDSA_"):
            ec_key_value = SubElement(key_value, dsig11_tag("ECKeyValue"), nsmap=dict(dsig11=namespaces.dsig11))
            SubElement(ec_key_value, dsig11_tag("NamedCurve"), URI=self.known_ecdsa_curve_oids[key.curve.name])
            public_key = SubElement(ec_key_value, dsig11_tag("PublicKey"))
            x = key.public_key().public_numbers().x
            y = key.public_key().public_numbers().y
            public_key.text = b64encode(long_to_bytes(4) + long_to_bytes(x) + long_to_bytes(y)).decode()
