#!/usr/bin/env python
"""
A small element tree for building request bodies.  Elements are
combined with ``+``, and turned into lxml elements only when the body is
serialized, so request builders never splice strings into XML.
"""
import sys
from collections.abc import Iterable
from typing import ClassVar
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from lxml import etree
from lxml.etree import _Element

from groupdav.lib.namespace import nsmap
from groupdav.lib.python_utilities import to_normal_str

if sys.version_info < (3, 11):
    from typing_extensions import Self
else:
    from typing import Self


class BaseElement:
    tag: ClassVar[Optional[str]] = None

    def __init__(
        self, name: Optional[str] = None, value: Union[str, bytes, None] = None
    ) -> None:
        self.children: List[BaseElement] = []
        self.attributes: Dict[str, str] = {}
        self.value: Optional[str] = to_normal_str(value)
        if name is not None:
            self.attributes["name"] = name

    def __add__(self, other: Union["BaseElement", Iterable["BaseElement"]]) -> Self:
        if isinstance(other, Iterable):
            self.children.extend(other)
        else:
            self.children.append(other)
        return self

    def to_xml(self) -> _Element:
        if self.tag is None:
            raise ValueError(f"{self.__class__.__name__} has no tag")
        root = etree.Element(self.tag, nsmap=nsmap)
        ## lxml escapes the text
        if self.value is not None:
            root.text = self.value
        for key, value in self.attributes.items():
            root.set(key, value)
        for child in self.children:
            root.append(child.to_xml())
        return root

    def to_bytes(self) -> bytes:
        """The serialized request body, UTF-8 with an XML declaration"""
        return etree.tostring(self.to_xml(), encoding="utf-8", xml_declaration=True)


class NamedBaseElement(BaseElement):
    """An element identified by its ``name`` attribute, like comp-filter"""

    def __init__(self, name: Optional[str] = None) -> None:
        super().__init__(name=name)

    def to_xml(self) -> _Element:
        if not self.attributes.get("name"):
            raise ValueError("name attribute must be defined for %s" % self.tag)
        return super().to_xml()


class ValuedBaseElement(BaseElement):
    def __init__(self, value: Union[str, bytes, None] = None) -> None:
        super().__init__(value=value)
