"""Text transforms for the guestinfo block of a .vmx control file."""

from typing import Dict


def _is_namespace_line(line: str, namespace: str) -> bool:
    return line.lstrip().startswith(f"{namespace}.")


def strip_namespace(text: str, namespace: str) -> str:
    """Drop every line that belongs to the namespace, keeping everything else as is."""
    lines = text.splitlines(keepends=True)
    return "".join(line for line in lines if not _is_namespace_line(line, namespace))


def ensure_trailing_newline(text: str) -> str:
    """Collapse trailing line terminators into exactly one."""
    stripped = text.rstrip("\r\n")
    if not stripped:
        return ""
    return stripped + "\n"


def render_properties(properties: Dict[str, str], namespace: str) -> str:
    # values go in verbatim, callers must keep double quotes out of them
    return "".join(f'{namespace}.{key} = "{value}"\n' for key, value in properties.items())


def inject_properties(text: str, properties: Dict[str, str], namespace: str) -> str:
    """
    Replace the namespace block of a control file with the given properties.

    Running it twice with the same properties gives the same result.
    """
    body = ensure_trailing_newline(strip_namespace(text, namespace))
    return body + render_properties(properties, namespace)


def read_properties(text: str, namespace: str) -> Dict[str, str]:
    """Parse the namespace lines of a control file back into a dict."""
    properties: Dict[str, str] = {}
    prefix = f"{namespace}."
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith(prefix) or "=" not in line:
            continue
        key, _, value = line.partition("=")
        properties[key.strip()[len(prefix):]] = value.strip().strip('"')
    return properties
