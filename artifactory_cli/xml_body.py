"""Dict-to-XML serialization for export and import settings bodies.

The system export/import endpoints take an XML settings document whose
element names match the setting names (``<exportSettings><exportPath>...``).
Commands describe the settings as a dict and this module renders the body.

Limitation: no XML attributes or namespaces. The settings documents do not
use either.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Any

XML_MEDIA_TYPE = "application/xml"


def dict_to_xml(data: dict[str, Any]) -> bytes:
    """Convert a Python dict to XML bytes for use as an HTTP request body.

    The dict must have exactly one top-level key, which becomes the root
    element name. Nested dicts become child elements. Lists become repeated
    sibling elements with the same tag name. ``None`` values become empty
    elements (``<Tag/>``). Booleans are written as ``true``/``false``.

    Args:
        data: Dict with exactly one top-level key (the root element name).

    Returns:
        UTF-8 encoded XML bytes with an XML declaration.

    Raises:
        ValueError: If *data* does not have exactly one top-level key.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(
            f"dict_to_xml expects a dict with exactly one top-level key "
            f"(the root element), got {type(data).__name__} with "
            f"{len(data) if isinstance(data, dict) else 'N/A'} keys"
        )

    root_tag = next(iter(data))
    root_element = _to_element(root_tag, data[root_tag])

    ET.indent(root_element)
    return ET.tostring(root_element, encoding="utf-8", xml_declaration=True)


def _to_element(tag: str, value: Any) -> ET.Element:
    """Recursively convert a tag + value pair into an XML Element."""
    element = ET.Element(tag)

    if value is None:
        pass
    elif isinstance(value, dict):
        for key, child_value in value.items():
            if isinstance(child_value, list):
                for item in child_value:
                    element.append(_to_element(key, item))
            else:
                element.append(_to_element(key, child_value))
    elif isinstance(value, bool):
        # bool before the scalar branch: str(True) would give "True"
        element.text = "true" if value else "false"
    else:
        element.text = str(value)

    return element


def export_settings_xml(
    export_path: str,
    include_metadata: bool = True,
    create_archive: bool = False,
    bypass_filtering: bool = False,
    verbose: bool = False,
    fail_on_error: bool = False,
    fail_if_empty: bool = False,
) -> bytes:
    """Render the body for a full system export into *export_path* (server side)."""
    return dict_to_xml({
        "exportSettings": {
            "exportPath": export_path,
            "includeMetadata": include_metadata,
            "createArchive": create_archive,
            "bypassFiltering": bypass_filtering,
            "verbose": verbose,
            "failOnError": fail_on_error,
            "failIfEmpty": fail_if_empty,
        }
    })


def import_settings_xml(
    import_path: str,
    include_metadata: bool = True,
    verbose: bool = False,
    fail_on_error: bool = False,
    fail_if_empty: bool = False,
) -> bytes:
    """Render the body for a full system import from *import_path* (server side)."""
    return dict_to_xml({
        "importSettings": {
            "importPath": import_path,
            "includeMetadata": include_metadata,
            "verbose": verbose,
            "failOnError": fail_on_error,
            "failIfEmpty": fail_if_empty,
        }
    })
