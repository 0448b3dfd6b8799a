import pytest
import typer
from typer.testing import CliRunner

from cli import app, parse_filter
from config.settings import Settings

runner = CliRunner()

BASE = "select bill_id from bills b where 1=1"


@pytest.fixture(autouse=True)
def isolated_logs_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(Settings, "LOGS_DIR", tmp_path / "logs")


def test_assemble_prints_query_and_bindings():
    """Test assemble command without a database."""
    result = runner.invoke(app, ["assemble", BASE, "--in", "b.status=passed,pending"])

    assert result.exit_code == 0
    assert f"Query: {BASE} and b.status in (:status)" in result.output
    assert "Bindings: {'status': ['passed', 'pending']}" in result.output
    assert "$status__0, $status__1" in result.output


def test_assemble_omits_empty_filter_by_default():
    result = runner.invoke(app, ["assemble", BASE, "--in", "b.status="])

    assert result.exit_code == 0
    assert f"Query: {BASE}\n" in result.output
    assert "Bindings: {}" in result.output


def test_assemble_union_compare_renders_constant_predicates():
    result = runner.invoke(
        app,
        ["assemble", BASE, "--in", "b.status=", "--not-in", "b.knesset_num=", "--policy", "union-compare"],
    )

    assert result.exit_code == 0
    assert "and 1 = 0" in result.output
    assert "and 1 = 1" in result.output


def test_assemble_runs_query_against_database(bills_db_path):
    """Test assemble command with --db."""
    result = runner.invoke(
        app,
        ["assemble", BASE, "--in", "b.knesset_num=24", "--not-in", "b.status=rejected", "--db", str(bills_db_path)],
    )

    assert result.exit_code == 0
    assert "1 row(s) returned." in result.output


def test_assemble_reports_compilation_error():
    result = runner.invoke(app, ["assemble", "selec bill_id frm bills"])

    assert result.exit_code == 1
    assert "Could not compile query" in result.output


def test_assemble_reports_execution_error(tmp_path):
    result = runner.invoke(app, ["assemble", "select * from missing_table", "--db", str(tmp_path / "none.duckdb")])

    assert result.exit_code == 1
    assert "Query failed" in result.output


def test_assemble_rejects_unknown_policy():
    result = runner.invoke(app, ["assemble", BASE, "--policy", "skip"])

    assert result.exit_code == 2


def test_parse_filter_derives_unique_keys_and_typed_values():
    used = set()

    assert parse_filter("b.knesset_num=24,25", used) == ("b.knesset_num", "knesset_num", [24, 25])
    assert parse_filter("s.knesset_num=x", used) == ("s.knesset_num", "knesset_num_2", ["x"])
    assert parse_filter('s."Desc"=', used) == ('s."Desc"', "Desc", [])


def test_parse_filter_requires_equals_sign():
    with pytest.raises(typer.BadParameter):
        parse_filter("b.status", set())
