"""Pytest configuration and shared fixtures for fillpdf tests."""

import json
import subprocess
import sys
from pathlib import Path

import pytest
from reportlab.pdfgen import canvas

# Add scripts to path
FILLPDF_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(FILLPDF_ROOT / "scripts"))

from engines import FillEngine  # noqa: E402

SCRIPTS = FILLPDF_ROOT / "scripts"

FAKE_PDF_BYTES = b"%PDF-1.4\n% filled by RecordingEngine\n%%EOF\n"


class RecordingEngine(FillEngine):
    """Test double that records calls and writes fixed bytes as output."""

    name = "recording"

    def __init__(self, status=0, output=FAKE_PDF_BYTES, raises=None):
        self.status = status
        self.output = output
        self.raises = raises
        self.calls = []

    def fill(self, source_path, data_path, output_path, flatten, cwd=None):
        self.calls.append({
            "source": Path(source_path),
            "data": Path(data_path),
            "output": Path(output_path),
            "flatten": flatten,
            "cwd": Path(cwd) if cwd else None,
            "fdf": Path(data_path).read_text(encoding="utf-8"),
            "workspace_exists": Path(cwd).is_dir() if cwd else False,
        })
        if self.raises:
            raise self.raises
        if self.status == 0:
            Path(output_path).write_bytes(self.output)
        return self.status


@pytest.fixture
def tmp_output(tmp_path):
    return tmp_path


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def source_pdf(tmp_path):
    """Any existing file will do for engines that never read it."""
    path = tmp_path / "source.pdf"
    path.write_bytes(b"%PDF-1.4\n%%EOF\n")
    return path


@pytest.fixture
def fillable_pdf(tmp_path):
    """A one-page PDF with two AcroForm text fields, 'name' and 'age'."""
    path = tmp_path / "fillable.pdf"
    c = canvas.Canvas(str(path), pagesize=(612, 792))
    c.drawString(72, 720, "Name:")
    c.acroForm.textfield(name="name", x=130, y=710, width=200, height=20)
    c.drawString(72, 680, "Age:")
    c.acroForm.textfield(name="age", x=130, y=670, width=80, height=20)
    c.save()
    return path


# --- Helpers used across test files ---

def run_fill(input_pdf, form_path, output_pdf, extra_args=None):
    """Run fill.py and return (parsed stdout or stderr JSON, exitcode)."""
    cmd = [sys.executable, str(SCRIPTS / "fill.py"), str(input_pdf), str(form_path), str(output_pdf)]
    if extra_args:
        cmd.extend(extra_args)
    result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    stream = result.stdout if result.returncode == 0 else result.stderr
    return json.loads(stream.strip().splitlines()[-1]), result.returncode


def make_form(tmp_path, form_data):
    """Write form values as JSON and return the path."""
    form_path = tmp_path / "form.json"
    form_path.write_text(json.dumps(form_data))
    return form_path


def make_engine_script(tmp_path, stderr=b"", exit_code=0, name="fake-pdftk"):
    """Write an executable stand-in for an external engine and return its path."""
    script = tmp_path / name
    script.write_text(
        f"#!{sys.executable}\n"
        "import sys\n"
        f"sys.stderr.buffer.write({stderr!r})\n"
        f"sys.exit({exit_code})\n"
    )
    script.chmod(0o755)
    return script
