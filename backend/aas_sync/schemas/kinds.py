"""
Node kinds of the resource tree.
"""

from enum import Enum


class ElementKind(str, Enum):
    """Kinds of tree nodes: the two submodel kinds plus AAS element kinds."""

    SUBMODEL = "Submodel"
    SUBMODEL_TEMPLATE = "SubmodelTemplate"

    RANGE = "Range"
    PROPERTY = "Property"
    OPERATION = "Operation"
    MULTI_LANGUAGE_PROPERTY = "MultiLanguageProperty"
    SUBMODEL_ELEMENT_LIST = "SubmodelElementList"
    SUBMODEL_ELEMENT_COLLECTION = "SubmodelElementCollection"
    RELATIONSHIP_ELEMENT = "RelationshipElement"
    ANNOTATED_RELATIONSHIP_ELEMENT = "AnnotatedRelationshipElement"
    ENTITY = "Entity"
    REFERENCE_ELEMENT = "ReferenceElement"
    FILE = "File"
    BLOB = "Blob"
    CAPABILITY = "Capability"
    BASIC_EVENT_ELEMENT = "BasicEventElement"

    UNKNOWN = "Unknown"


SUBMODEL_KINDS = frozenset({ElementKind.SUBMODEL, ElementKind.SUBMODEL_TEMPLATE})

COLLECTION_KINDS = frozenset(
    {ElementKind.SUBMODEL_ELEMENT_COLLECTION, ElementKind.SUBMODEL_ELEMENT_LIST}
)
