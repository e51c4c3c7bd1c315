import logging
from typing import Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.hashes import Hash
from lxml import etree

from .algorithms import CanonicalizationMethod, DigestAlgorithm, digest_algorithm_implementations
from .document import DEFAULT_ID_ATTRIBUTES, Document, _fromstring, _tostring
from .exceptions import InvalidArgument, InvalidInput
from .util import _remove_sig, namespaces

logger = logging.getLogger(__name__)


class XMLSignatureProcessor:
    """
    Functionality shared by :class:`domsig.XMLSigner` and :class:`domsig.XMLVerifier`: canonicalization, digesting,
    element lookup and reference URI resolution.
    """

    # See https://tools.ietf.org/html/rfc5656
    known_ecdsa_curves = {
        "urn:oid:1.2.840.10045.3.1.7": ec.SECP256R1,
        "urn:oid:1.3.132.0.34": ec.SECP384R1,
        "urn:oid:1.3.132.0.35": ec.SECP521R1,
        "urn:oid:1.2.840.10045.3.1.1": ec.SECP192R1,
        "urn:oid:1.3.132.0.33": ec.SECP224R1,
    }
    known_ecdsa_curve_oids = {ec().name: oid for oid, ec in known_ecdsa_curves.items()}  # type: ignore

    id_attributes: Tuple[str, ...] = DEFAULT_ID_ATTRIBUTES

    def _get_digest(self, data, algorithm: DigestAlgorithm):
        algorithm_implementation = digest_algorithm_implementations[algorithm]()
        hasher = Hash(algorithm=algorithm_implementation)
        hasher.update(data)
        return hasher.finalize()

    def _find(self, element, query, require=True, xpath=""):
        namespace = "ds"
        if ":" in query:
            namespace, _, query = query.partition(":")
        result = element.find(f"{xpath}{namespace}:{query}", namespaces=namespaces)

        if require and result is None:
            raise InvalidInput(f"Expected to find XML element {query} in {element.tag}")
        return result

    def _findall(self, element, query, xpath=""):
        namespace = "ds"
        if ":" in query:
            namespace, _, query = query.partition(":")
        return element.findall(f"{xpath}{namespace}:{query}", namespaces=namespaces)

    def _c14n(self, nodes, algorithm: CanonicalizationMethod, inclusive_ns_prefixes=None):
        exclusive, with_comments = False, False

        if algorithm.value.startswith("http://www.w3.org/2001/10/xml-exc-c14n#"):
            exclusive = True
        if algorithm.value.endswith("#WithComments"):
            with_comments = True

        if not isinstance(nodes, list):
            nodes = [nodes]

        c14n = b""
        for node in nodes:
            c14n += etree.tostring(
                node,
                method="c14n",
                exclusive=exclusive,
                with_comments=with_comments,
                inclusive_ns_prefixes=inclusive_ns_prefixes,
            )
        logger.debug("Canonicalized string (exclusive=%s, with_comments=%s): %s", exclusive, with_comments, c14n)
        return c14n

    def _has_id(self, document: Document, element) -> bool:
        return document.get_id(element, id_attributes=self.id_attributes) is not None

    def _resolve_reference(self, document: Document, uri: Optional[str], context: etree._Element):
        """
        Resolve a reference URI to the element it designates.

        An empty URI designates the nearest ancestor-or-self of **context** (the element holding the signature) that
        carries an ID attribute, falling back to the document root. A fragment URI designates the element whose ID
        attribute has that value.
        """
        if uri is None:
            raise InvalidInput("References without URIs are not supported")
        elif uri == "":
            node = context
            while node is not None:
                if self._has_id(document, node):
                    return node
                node = node.getparent()
            return document.root
        elif uri.startswith("#xpointer("):
            raise InvalidInput("XPointer references are not supported")
        elif uri.startswith("#") or ":" not in uri:
            result = document.find_by_id(uri.lstrip("#"), id_attributes=self.id_attributes)
            if result is None:
                raise InvalidArgument(f"Unable to resolve reference URI: {uri}")
            return result
        else:
            raise InvalidInput(f"External URI dereferencing is not supported: {uri}")

    def _copy_payload(self, payload: etree._Element, signature: Optional[etree._Element] = None):
        """
        Return a standalone copy of **payload**. If **signature** lies within **payload**, its copy is excised (the
        enveloped signature transform).
        """
        path = []
        node = signature
        while node is not None and node is not payload:
            parent = node.getparent()
            if parent is not None:
                path.append(parent.index(node))
            node = parent

        # Create a separate copy of the node so we can modify the tree and avoid any c14n inconsistencies from
        # namespaces propagating from parent nodes.
        copied = _fromstring(_tostring(payload))
        if signature is not None and node is payload:
            copied_signature = copied
            for index in reversed(path):
                copied_signature = copied_signature[index]
            _remove_sig(copied_signature, idempotent=True)
        return copied
