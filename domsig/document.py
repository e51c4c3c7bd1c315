"""
A thin document model over :mod:`lxml.etree`.

lxml elements carry no notion of an attribute being "the" ID attribute of an element, so :class:`Document` keeps a
registry of is-ID flags next to the tree. Flags are never copied implicitly: :meth:`Document.import_node` returns an
unflagged copy and callers re-establish the flags with :func:`domsig.idattr.propagate_id_attribute`.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Union

from lxml import etree

from .exceptions import InvalidArgument, ParseError
from .util import ds_tag, ensure_bytes, is_element, namespaces

logger = logging.getLogger(__name__)

DEFAULT_ID_ATTRIBUTES = ("Id", "ID", "id", "xml:id")

_parser = etree.XMLParser(
    resolve_entities=False,
    load_dtd=False,
    dtd_validation=False,
    no_network=True,
    huge_tree=False,
)


def _attribute_key(name):
    if name.startswith("xml:"):
        return f"{{{namespaces.xml}}}" + name[len("xml:") :]
    return name


def _fromstring(xml_string):
    try:
        root = etree.fromstring(ensure_bytes(xml_string), parser=_parser)
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Malformed XML input: {e}") from e
    docinfo = root.getroottree().docinfo
    if docinfo.doctype or docinfo.internalDTD is not None or docinfo.externalDTD is not None:
        raise ParseError("DOCTYPE declarations are not allowed in XML input")
    for _ in root.iter(etree.Entity):
        raise ParseError("Entities are not supported in XML input")
    return root


def _tostring(node, **kwargs):
    return etree.tostring(node, with_tail=False, **kwargs)


class Document:
    """
    An XML document: a single root element plus the is-ID attribute flags of its elements.

    Documents are not synchronized; only one thread may mutate a given instance at a time.
    """

    def __init__(self, root: Optional[etree._Element] = None):
        self._root = root
        self._id_attributes: Dict[etree._Element, List[str]] = {}

    def __repr__(self):
        tag = None if self._root is None else self._root.tag
        return f"<{self.__class__.__name__} root={tag!r}>"

    @property
    def root(self) -> Optional[etree._Element]:
        return self._root

    def set_root(self, element: etree._Element):
        """
        Attach the root element of an empty document.
        """
        if self._root is not None:
            raise InvalidArgument("Document already has a root element")
        if not is_element(element):
            raise InvalidArgument("Document root must be an XML element")
        if element.getparent() is not None:
            raise InvalidArgument("Document root cannot have a parent; import the node first")
        self._root = element

    def contains(self, node) -> bool:
        if node is None or self._root is None:
            return False
        return node.getroottree().getroot() is self._root

    def import_node(self, node, deep: bool = True) -> etree._Element:
        """
        Copy **node** (and, if **deep** is set, its subtree) for use in this document. The copy is detached: attach it
        with :meth:`set_root`, :meth:`replace_child` or the lxml tree API. In-scope namespace declarations are copied
        along with the node; is-ID flags are not.
        """
        if not is_element(node):
            raise InvalidArgument("Only XML elements can be imported")
        if deep:
            # Serialize and reparse rather than copy.deepcopy, which does not carry inherited namespace declarations
            return _fromstring(_tostring(node))
        copy = etree.Element(node.tag, attrib=dict(node.attrib), nsmap=node.nsmap)
        copy.text = node.text
        return copy

    def replace_child(self, parent: Optional[etree._Element], old: etree._Element, new: etree._Element):
        """
        Put **new** at the position of **old**. If **parent** is None, **old** must be the root element and the
        document root is replaced.
        """
        if not self.contains(old):
            raise InvalidArgument("Node to replace does not belong to this document")
        if parent is None:
            if old is not self._root:
                raise InvalidArgument("Only the root element has no parent")
            self._forget(old)
            self._root = new
            return
        if old.getparent() is not parent:
            raise InvalidArgument("Node to replace is not a child of the given parent")
        tail = old.tail
        self._forget(old)
        parent.replace(old, new)
        new.tail = tail

    def mark_id_attribute(self, element: etree._Element, name: str):
        """
        Flag the attribute **name** of **element** as an ID attribute, so that reference URIs naming its value resolve
        to **element**.
        """
        if not is_element(element):
            raise InvalidArgument("ID attributes can only be set on XML elements")
        if element.get(_attribute_key(name)) is None:
            raise InvalidArgument(f"Element {element.tag} has no attribute {name}")
        flagged = self._id_attributes.setdefault(element, [])
        if name not in flagged:
            flagged.append(name)

    def id_attribute_names(self, element) -> List[str]:
        return list(self._id_attributes.get(element, ()))

    def is_id_attribute(self, element, name: str) -> bool:
        return name in self._id_attributes.get(element, ())

    def get_id(self, element, id_attributes: Iterable[str] = DEFAULT_ID_ATTRIBUTES) -> Optional[str]:
        """
        Return the ID value of **element**: the value of its first flagged ID attribute, or failing that the value of
        the first conventional ID attribute it carries.
        """
        for name in self._id_attributes.get(element, ()):
            value = element.get(_attribute_key(name))
            if value is not None:
                return value
        for name in id_attributes:
            value = element.get(_attribute_key(name))
            if value is not None:
                return value
        return None

    def find_by_id(self, value: str, id_attributes: Iterable[str] = DEFAULT_ID_ATTRIBUTES) -> Optional[etree._Element]:
        """
        Find the element whose ID attribute equals **value**. Flagged attributes are searched first, then the
        conventional **id_attributes** names in order.

        :raises: :class:`domsig.exceptions.InvalidArgument` if more than one element matches.
        """
        flagged_matches = [
            element
            for element, names in self._id_attributes.items()
            if self.contains(element) and element.get(_attribute_key(names[0])) == value
        ]
        if len(flagged_matches) > 1:
            raise InvalidArgument(f"Ambiguous ID {value} resolved to {len(flagged_matches)} nodes")
        elif len(flagged_matches) == 1:
            return flagged_matches[0]
        if self._root is None:
            return None
        for id_attribute in id_attributes:
            if id_attribute == "xml:id":
                results = self._root.xpath("//*[@xml:id=$value]", value=value)
            else:
                xpath_query = f"//*[@*[local-name() = '{id_attribute}']=$value]"
                results = self._root.xpath(xpath_query, value=value)
            if len(results) > 1:
                raise InvalidArgument(f"Ambiguous ID {value} resolved to {len(results)} nodes")
            elif len(results) == 1:
                return results[0]
        return None

    def signatures(self) -> List[etree._Element]:
        """
        All ``ds:Signature`` elements in the document, in document order.
        """
        if self._root is None:
            return []
        return list(self._root.iter(ds_tag("Signature").text))

    def _forget(self, subtree):
        for element in subtree.iter():
            self._id_attributes.pop(element, None)


def new_document() -> Document:
    logger.debug("Created new XML document")
    return Document()


def parse(data: Union[str, bytes]) -> Document:
    """
    Parse XML input into a :class:`Document`. DOCTYPE declarations, entities, external DTDs and network access are
    always refused.

    :raises: :class:`domsig.exceptions.ParseError`
    """
    if data is None:
        raise InvalidArgument("XML input cannot be None")
    return Document(_fromstring(data))


def parse_file(path: Union[str, os.PathLike]) -> Document:
    logger.debug("Parsing XML document from %s", path)
    with open(path, "rb") as fh:
        return parse(fh.read())


def serialize(document: Document, pretty_print: Optional[bool] = None) -> bytes:
    """
    Serialize a document as UTF-8 with an XML declaration.

    :param pretty_print:
        Indent the output. By default, documents are indented unless they carry a ``ds:Signature``: indentation adds
        whitespace text to signed content and would break its digest.
    """
    if document is None or document.root is None:
        raise InvalidArgument("Cannot serialize an empty document")
    if pretty_print is None:
        pretty_print = len(document.signatures()) == 0
    return etree.tostring(document.root, encoding="UTF-8", xml_declaration=True, pretty_print=pretty_print)
