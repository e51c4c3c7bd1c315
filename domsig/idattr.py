"""
Propagation of is-ID attribute flags between documents.

When a node is copied into a standalone document for signing and later imported back, the copies lose their is-ID
flags. :func:`propagate_id_attribute` re-establishes the flag on the structurally corresponding element so that
reference URIs keep resolving to it.
"""

import logging

from lxml import etree

from .document import Document
from .exceptions import InvalidArgument
from .util import is_element, namespaces

logger = logging.getLogger(__name__)


def propagate_id_attribute(
    source_document: Document, source_node, dest_document: Document, dest_element: etree._Element
):
    """
    Mark on **dest_element** the attribute that is flagged as ID on **source_node**.

    The attributes of **source_node** are scanned in document order and the first flagged one wins. If the node is not
    an element, has no attributes, or has no flagged attribute, nothing happens.
    """
    if source_document is None or dest_document is None:
        raise InvalidArgument("Source and destination documents are required")
    if source_node is None or dest_element is None:
        raise InvalidArgument("Source node and destination element are required")
    if not is_element(source_node):
        return
    flagged = source_document.id_attribute_names(source_node)
    if not flagged:
        return
    for name in source_node.attrib.keys():
        if name.startswith(f"{{{namespaces.xml}}}"):
            name = "xml:" + etree.QName(name).localname
        if name in flagged:
            logger.debug("Propagating ID attribute %s to %s", name, dest_element.tag)
            dest_document.mark_id_attribute(dest_element, name)
            return
