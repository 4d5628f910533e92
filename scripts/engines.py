"""Form-filling engines.

An engine takes a fillable PDF and an FDF data document and writes the filled
PDF to an output path. ``fill`` returns the engine's exit status: 0 on
success, anything else on failure. Engines that run an external tool raise
``OSError`` when the tool cannot be launched.
"""

import logging
import subprocess

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from pypdf.generic import IndirectObject

from fdf import parse_fdf

logger = logging.getLogger(__name__)


class FillEngine:
    """Base class for form-filling engines."""

    name = "engine"

    def fill(self, source_path, data_path, output_path, flatten, cwd=None):
        raise NotImplementedError


# ---------------------------------------------------------------------------
# External tools
# ---------------------------------------------------------------------------

class SubprocessEngine(FillEngine):
    """Engine that shells out to an external command."""

    def command(self, source_path, data_path, output_path, flatten):
        raise NotImplementedError

    def fill(self, source_path, data_path, output_path, flatten, cwd=None):
        cmd = self.command(str(source_path), str(data_path), str(output_path), flatten)
        logger.debug("Running %s in %s: %s", self.name, cwd, " ".join(cmd))
        result = subprocess.run(cmd, cwd=cwd, capture_output=True,
                                text=True, errors="replace")
        if result.returncode != 0:
            logger.warning("%s exited with status %d: %s",
                           self.name, result.returncode, result.stderr.strip())
        return result.returncode


class McpdfEngine(SubprocessEngine):
    """mcpdf, the iText-based pdftk replacement, run through java."""

    name = "mcpdf"

    def __init__(self, java="java", jar="mcpdf.jar"):
        self.java = java
        self.jar = jar

    def command(self, source_path, data_path, output_path, flatten):
        cmd = [
            self.java, "-jar", str(self.jar),
            "fill_form", source_path,
            "data", data_path,
            "output", output_path,
        ]
        if flatten:
            cmd.append("flatten")
        return cmd


class PdftkEngine(SubprocessEngine):
    """pdftk, or any command-line compatible build of it."""

    name = "pdftk"

    def __init__(self, pdftk="pdftk"):
        self.pdftk = pdftk

    def command(self, source_path, data_path, output_path, flatten):
        cmd = [self.pdftk, source_path, "fill_form", data_path, "output", output_path]
        if flatten:
            cmd.append("flatten")
        return cmd


# ---------------------------------------------------------------------------
# In-process pypdf engine
# ---------------------------------------------------------------------------

def resolve(obj):
    while isinstance(obj, IndirectObject):
        obj = obj.get_object()
    return obj


def _text_field_values(reader):
    fields = reader.get_fields() or {}
    return {
        name: str(field.get("/V") or "")
        for name, field in fields.items()
        if field.get("/FT") == "/Tx"
    }


class PypdfEngine(FillEngine):
    """Fill AcroForm fields in-process with pypdf.

    Flattening draws each text field's appearance into the page content,
    then removes the widgets and the AcroForm.
    """

    name = "pypdf"

    def fill(self, source_path, data_path, output_path, flatten, cwd=None):
        with open(data_path, encoding="utf-8") as f:
            values = parse_fdf(f.read())

        try:
            reader = PdfReader(source_path)
            writer = PdfWriter()
            writer.clone_reader_document_root(reader)

            root = writer._root_object
            if "/AcroForm" not in root:
                logger.error("No AcroForm in %s", source_path)
                return 1
            acroform = resolve(root["/AcroForm"])

            # XFA overrides the AcroForm layer in viewers; pypdf only updates AcroForm
            if "/XFA" in acroform:
                del acroform["/XFA"]

            if flatten:
                # Unfilled text fields keep their current value on the page
                values = {**_text_field_values(reader), **values}

            if values:
                for page in writer.pages:
                    if "/Annots" in page:
                        writer.update_page_form_field_values(page, values, flatten=flatten)

            if flatten:
                writer.remove_annotations(subtypes="/Widget")
                del root["/AcroForm"]
                logger.debug("Flattened %d fields into %s", len(values), output_path)

            with open(output_path, "wb") as f:
                writer.write(f)
        except PyPdfError as err:
            logger.error("pypdf failed on %s: %s", source_path, err)
            return 1
        return 0


ENGINES = {
    "mcpdf": McpdfEngine,
    "pdftk": PdftkEngine,
    "pypdf": PypdfEngine,
}


def make_engine(name, **kwargs):
    """Build an engine by name, passing ``kwargs`` to its constructor."""
    try:
        cls = ENGINES[name]
    except KeyError:
        raise ValueError(f"Unknown engine: {name}") from None
    return cls(**kwargs)
