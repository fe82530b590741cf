import csv
import io
import json

import pytest

from portpoke.models import Report, ScanSummary, ServiceGuess, open_outcome
from portpoke.output import FORMATTERS, render, write_report
from portpoke.ports import PortRange


@pytest.fixture
def report():
    return Report(
        target="localhost",
        address="127.0.0.1",
        port_range=PortRange(1, 1024),
        entries=(
            open_outcome(22, 0.0012, banner="SSH-2.0-TestServer", service=ServiceGuess("SSH", "TestServer")),
            open_outcome(80, 0.0031),
        ),
        summary=ScanSummary(scanned=1024, open=2, closed=1020, timed_out=1, errored=1),
        elapsed_s=1.5,
    )


class TestRender:
    def test_text(self, report):
        out = render(report, "text")
        lines = out.splitlines()

        assert lines[0] == "Target: localhost (127.0.0.1) | Ports: 1-1024"
        assert lines[1] == "Found 2 open ports"
        assert lines[2] == "Port 22: open (0.0012s) | Service: SSH (TestServer) | Banner: SSH-2.0-TestServer"
        assert lines[3] == "Port 80: open (0.0031s) | Service: null | Banner: null"
        assert lines[4] == "Scanned 1024 ports in 1.50 seconds: 2 open, 1020 closed, 1 timed out, 1 errors"

    def test_json(self, report):
        payload = json.loads(render(report, "json"))

        assert payload["target"] == "localhost"
        assert payload["start_port"] == 1
        assert payload["end_port"] == 1024
        assert payload["summary"] == {"scanned": 1024, "open": 2, "closed": 1020, "timed_out": 1, "errored": 1}
        assert payload["results"][0] == {
            "target": "127.0.0.1",
            "port": 22,
            "status": "open",
            "service": "SSH",
            "version": "TestServer",
            "banner": "SSH-2.0-TestServer",
        }
        assert payload["results"][1]["service"] is None

    def test_csv(self, report):
        rows = list(csv.DictReader(io.StringIO(render(report, "csv"))))

        assert [r["port"] for r in rows] == ["22", "80"]
        assert rows[0]["service"] == "SSH"
        assert rows[0]["version"] == "TestServer"
        assert rows[1]["banner"] == ""

    def test_empty_report(self):
        empty = Report(target="h", address="10.0.0.1", port_range=PortRange(1, 2))

        assert json.loads(render(empty, "json"))["results"] == []
        assert render(empty, "csv") == "target,port,status,service,version,banner\n"
        assert "Found 0 open ports" in render(empty, "text")

    def test_unknown_format(self, report):
        with pytest.raises(ValueError):
            render(report, "html")

    def test_every_cli_format_has_a_renderer(self):
        assert set(FORMATTERS) == {"text", "json", "csv"}


class TestWriteReport:
    def test_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "scans" / "out.json"

        assert write_report("{}\n", str(path)) == str(path)
        assert path.read_text() == "{}\n"
