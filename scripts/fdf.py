"""Encode form field values as an FDF (Forms Data Format) document.

The document is the plain-text form understood by mcpdf and pdftk:

    %FDF-1.2
    ...
    /FDF << /Fields [
    << /T (name) /V (value)>>
    ]
    ...
    %%EOF

Field names and values are written as PDF literal strings. By default
backslashes and parentheses are escaped; pass ``escape=False`` to write them
verbatim like older fillers did.
"""

import re
from pathlib import Path

FDF_HEADER = """%FDF-1.2
%,,oe"
1 0 obj
<<
/FDF << /Fields ["""

FDF_FOOTER = """]
>>
>>
endobj
trailer
<<
/Root 1 0 R
>>
%%EOF"""

FIELD_LINE = "<< /T ({name}) /V ({value})>>"

# Literal string: any run of escaped chars or chars other than ( ) \
_LITERAL = r"((?:\\.|[^\\()])*)"
_FIELD_PATTERN = re.compile(r"<<\s*/T\s*\(" + _LITERAL + r"\)\s*/V\s*\(" + _LITERAL + r"\)\s*>>", re.DOTALL)
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "b": "\b", "f": "\f"}
_UNESCAPE_PATTERN = re.compile(r"\\(\r\n|[0-7]{1,3}|.)", re.DOTALL)


def render_value(value):
    """Text representation of a scalar field value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def escape_pdf_string(text):
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def unescape_pdf_string(text):
    """Decode the escapes of a PDF literal string."""
    def _sub(match):
        seq = match.group(1)
        if seq in ("\r\n", "\r", "\n"):
            return ""  # line continuation
        if seq[0] in "01234567":
            return chr(int(seq, 8) & 0xFF)
        return _ESCAPES.get(seq, seq)

    return _UNESCAPE_PATTERN.sub(_sub, text)


def build_fdf(form, escape=True):
    """Return the FDF document for a mapping of field name to value."""
    lines = [FDF_HEADER]
    for name, value in form.items():
        name, value = str(name), render_value(value)
        if escape:
            name, value = escape_pdf_string(name), escape_pdf_string(value)
        lines.append(FIELD_LINE.format(name=name, value=value))
    lines.append(FDF_FOOTER)
    return "\n".join(lines) + "\n"


def write_fdf(form, path, escape=True):
    """Write the FDF document for ``form`` to ``path`` and return the path."""
    path = Path(path)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(build_fdf(form, escape=escape))
    return path


def parse_fdf(text):
    """Read the field entries of an FDF document back into a dict."""
    return {
        unescape_pdf_string(m.group(1)): unescape_pdf_string(m.group(2))
        for m in _FIELD_PATTERN.finditer(text)
    }
