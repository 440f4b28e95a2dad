"""Text adapter and interactive client tests."""

import pytest

from redsock import InvalidArgument, TextAdapter
from redsock import cli


@pytest.fixture
def adapter(db):
    return TextAdapter(db)


class TestTextAdapter:
    """Free-text get/set."""

    def test_set(self, adapter, db):
        assert adapter.parse_text("set name alice") == "True"
        assert db.get_string("name") == "alice"

    def test_get(self, adapter, db):
        db.set("name", "alice")
        assert adapter.parse_text("get name") == "alice"

    def test_get_missing(self, adapter):
        assert adapter.parse_text("get nobody") == ""

    def test_words_around_commands_ignored(self, adapter, db):
        db.set("k", "v")
        assert adapter.parse_text("please get k now") == "v"

    def test_results_concatenated(self, adapter):
        assert adapter.parse_text("set a 1 set b 2 get a get b") == "TrueTrue12"

    def test_operands_not_treated_as_commands(self, adapter, db):
        assert adapter.parse_text("set get set") == "True"
        assert db.get_string("get") == "set"

    def test_uppercase_ignored(self, adapter):
        assert adapter.parse_text("GET k") == ""

    def test_missing_operand(self, adapter):
        with pytest.raises(InvalidArgument):
            adapter.parse_text("set onlykey")

    def test_execute_strips(self, adapter):
        assert adapter.execute("  set k v\n") == "True"

    def test_get_binary_value(self, adapter, db):
        db.set("k", b"\xff\xfe")
        assert adapter.execute("get k") == "\ufffd\ufffd"

    def test_execute_none(self, adapter):
        with pytest.raises(InvalidArgument):
            adapter.execute(None)


class TestRepl:
    """Interactive loop."""

    def run(self, adapter, lines):
        feed = iter(lines)
        output = []

        def read(prompt):
            try:
                return next(feed)
            except StopIteration:
                raise EOFError

        cli.run_repl(adapter, read=read, write=output.append)
        return output

    def test_commands(self, adapter):
        assert self.run(adapter, ["set k v", "", "get k"]) == ["True", "v"]

    def test_binary_value_printed(self, adapter, db):
        db.set("k", b"\xff")
        assert self.run(adapter, ["get k", "get missing"]) == ["\ufffd", ""]

    def test_exit_stops(self, adapter):
        assert self.run(adapter, ["set k v", "exit", "get k"]) == ["True"]

    def test_help(self, adapter):
        output = self.run(adapter, ["help"])
        assert "get <key>" in output[0]

    def test_errors_reported(self, adapter):
        assert self.run(adapter, ["set k"]) == ["ERROR: set needs 2 argument(s)"]

    def test_parse_args(self):
        args = cli.parse_args(["--host", "h", "--port", "7000", "--timeout", "50", "--debug"])
        assert (args.host, args.port, args.timeout, args.debug) == ("h", 7000, 50, True)
