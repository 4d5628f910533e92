#!/usr/bin/env python3
"""Fill a PDF form from field values and write the filled PDF.

The values are encoded as an FDF document in a scratch directory and handed
to a form-filling engine (mcpdf by default, or pdftk, or in-process pypdf).
The engine's output is then moved to the destination, optionally refusing to
overwrite an existing file.

Usage:
    python fill.py <input.pdf> <form.json> <output.pdf> [--engine mcpdf]

The form.json format is a flat object of field name to value:
{
    "name": "Alice",
    "age": 30,
    "subscribed": true
}
"""

import argparse
import json
import logging
import os
import shutil
import stat
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from engines import ENGINES, McpdfEngine, make_engine
from fdf import write_fdf

logger = logging.getLogger(__name__)

DATA_FILENAME = "data.fdf"
OUTPUT_FILENAME = "output.pdf"
NEW_FILE_MODE = 0o644


class FillError(Exception):
    """Filling a form failed."""


class PreconditionError(FillError):
    pass


class DestinationExistsError(PreconditionError):
    pass


class EngineError(FillError):
    """The form-filling engine could not be launched or reported failure."""


@dataclass(frozen=True)
class Options:
    overwrite: bool = True
    flatten: bool = True
    escape: bool = True


# ---------------------------------------------------------------------------
# Finalizing
# ---------------------------------------------------------------------------

def finalize(output_path, dest_path, overwrite):
    """Move the engine output to ``dest_path``.

    The output is copied next to the destination and renamed over it, so the
    destination either keeps its old content or holds the complete new file.
    A replaced destination keeps its permission bits; a new one gets 0o644.
    """
    dest_path = Path(dest_path)
    try:
        dest_exists = dest_path.exists()
        mode = stat.S_IMODE(dest_path.stat().st_mode) if dest_exists else NEW_FILE_MODE
    except OSError as err:
        raise FillError(f"failed to check if destination PDF file exists: {err}") from err
    if dest_exists and not overwrite:
        raise DestinationExistsError(f"destination PDF file already exists: '{dest_path}'")

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=".fillpdf-", suffix=".pdf", dir=dest_path.parent)
        os.close(fd)
    except OSError as err:
        raise FillError(f"failed to create temporary destination file: {err}") from err

    try:
        shutil.copyfile(output_path, tmp_name)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, dest_path)
    except OSError as err:
        _remove_quietly(tmp_name)
        raise FillError(f"failed to copy created output PDF to final destination: {err}") from err
    return dest_path


def _remove_quietly(path):
    try:
        os.remove(path)
    except OSError as err:
        logger.warning("failed to remove temporary file '%s': %s", path, err)


# ---------------------------------------------------------------------------
# Filling
# ---------------------------------------------------------------------------

def fill(form, source_path, dest_path, options=None, engine=None, scratch_dir=None):
    """Fill ``source_path`` with ``form`` and write the result to ``dest_path``.

    Args:
        form: mapping of field name to scalar value.
        source_path: fillable PDF.
        dest_path: where to write the filled PDF.
        options: an ``Options``; defaults to overwrite and flatten.
        engine: a ``FillEngine``; defaults to ``McpdfEngine()``.
        scratch_dir: base directory for the scratch workspace; defaults to
            the system temp directory.

    Returns the absolute destination path. Raises ``FillError`` (or one of
    its subclasses) naming the stage that failed.
    """
    options = options or Options()
    engine = engine or McpdfEngine()

    try:
        source_path = Path(os.path.abspath(source_path))
        dest_path = Path(os.path.abspath(dest_path))
    except OSError as err:
        raise FillError(f"failed to create the absolute path: {err}") from err

    try:
        source_exists = source_path.exists()
    except OSError as err:
        raise FillError(f"failed to check if form PDF file exists: {err}") from err
    if not source_exists:
        raise PreconditionError(f"form PDF file does not exist: '{source_path}'")

    try:
        workspace = Path(tempfile.mkdtemp(prefix="fillpdf-", dir=scratch_dir))
    except OSError as err:
        raise FillError(f"failed to create temporary directory: {err}") from err

    try:
        data_path = workspace / DATA_FILENAME
        output_path = workspace / OUTPUT_FILENAME
        try:
            write_fdf(form, data_path, escape=options.escape)
        except OSError as err:
            raise FillError(f"failed to create fdf form data file: {err}") from err

        try:
            status = engine.fill(source_path, data_path, output_path, options.flatten, cwd=workspace)
        except Exception as err:
            raise EngineError(f"{engine.name} error: {err}") from err
        if status != 0:
            raise EngineError(f"{engine.name} error: exited with status {status}")

        finalize(output_path, dest_path, options.overwrite)
    finally:
        try:
            shutil.rmtree(workspace)
        except OSError as err:
            logger.warning("failed to remove temporary directory '%s': %s", workspace, err)

    logger.info("Filled %d fields from %s into %s", len(form), source_path, dest_path)
    return dest_path


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def build_engine(args):
    if args.engine == "mcpdf":
        return make_engine("mcpdf", java=args.java, jar=args.mcpdf_jar)
    if args.engine == "pdftk":
        return make_engine("pdftk", pdftk=args.pdftk)
    return make_engine(args.engine)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Fill a PDF form from JSON field values")
    parser.add_argument("input_pdf", help="Path to fillable input PDF")
    parser.add_argument("form", help="Path to JSON object of field name to value")
    parser.add_argument("output_pdf", help="Path for output PDF")
    parser.add_argument("--engine", default="mcpdf", choices=sorted(ENGINES),
                        help="Form-filling engine")
    parser.add_argument("--no-flatten", action="store_true", help="Keep fields editable")
    parser.add_argument("--no-overwrite", action="store_true",
                        help="Fail if the output PDF already exists")
    parser.add_argument("--no-escape", action="store_true",
                        help="Write field text into the FDF without escaping")
    parser.add_argument("--scratch-dir", help="Base directory for temporary files")
    parser.add_argument("--java", default="java", help="Java executable for mcpdf")
    parser.add_argument("--mcpdf-jar", default=os.environ.get("MCPDF_JAR", "mcpdf.jar"),
                        help="Path to mcpdf.jar")
    parser.add_argument("--pdftk", default="pdftk", help="pdftk executable")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        with open(args.form, encoding="utf-8") as f:
            form = json.load(f)
    except (OSError, ValueError) as err:
        print(json.dumps({"error": f"Cannot read form data {args.form}: {err}"}), file=sys.stderr)
        sys.exit(1)
    if not isinstance(form, dict):
        print(json.dumps({"error": "Form data must be a JSON object"}), file=sys.stderr)
        sys.exit(1)

    options = Options(
        overwrite=not args.no_overwrite,
        flatten=not args.no_flatten,
        escape=not args.no_escape,
    )

    try:
        dest = fill(form, args.input_pdf, args.output_pdf, options,
                    engine=build_engine(args), scratch_dir=args.scratch_dir)
    except FillError as err:
        print(json.dumps({"error": str(err)}), file=sys.stderr)
        sys.exit(1)

    print(json.dumps({
        "status": "success",
        "output": str(dest),
        "engine": args.engine,
        "flatten": options.flatten,
        "fields_filled": len(form),
    }))


if __name__ == "__main__":
    main()
