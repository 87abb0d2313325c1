import pytest

from gateway.errors import RejectedStatement
from gateway.validator import NOT_PERMITTED, WRITE_FORBIDDEN, StatementValidator


@pytest.fixture
def validator():
    return StatementValidator()


class TestValidate:
    @pytest.mark.parametrize("sql", [
        "SELECT 1",
        "  select * from orders",
        "WITH t AS (SELECT 1) SELECT * FROM t",
        "show tables",
        "DESCRIBE orders",
        "\n\tExplain SELECT 1",
    ])
    def test_read_statements_pass(self, validator, sql):
        result = validator.validate(sql)
        assert result.is_valid
        assert result.error_message is None

    @pytest.mark.parametrize("sql", [
        "DROP TABLE x; SELECT 1",
        "insert into orders values (1)",
        "  Update orders SET amount = 0",
        "DELETE FROM orders",
        "create table t (a int)",
        "ALTER TABLE orders ADD COLUMN x INT",
        "truncate orders",
        "GRANT SELECT ON orders TO bob",
        "revoke all on orders from bob",
        "MERGE INTO orders USING src ON true",
    ])
    def test_write_statements_fail(self, validator, sql):
        result = validator.validate(sql)
        assert not result.is_valid
        assert result.error_message == WRITE_FORBIDDEN

    @pytest.mark.parametrize("sql", ["", "   ", "CALL do_something()", "selected_rows", "PRAGMA version"])
    def test_unknown_statements_not_permitted(self, validator, sql):
        result = validator.validate(sql)
        assert not result.is_valid
        assert result.error_message == NOT_PERMITTED

    def test_keyword_must_be_whole_word(self, validator):
        assert validator.validate("dropship_report").error_message == NOT_PERMITTED


class TestEnsureReadOnly:
    def test_raises_with_reason(self, validator):
        with pytest.raises(RejectedStatement) as exc_info:
            validator.ensure_read_only("DROP TABLE orders")
        assert exc_info.value.reason == WRITE_FORBIDDEN

    def test_read_statement_passes(self, validator):
        validator.ensure_read_only("SELECT 1")

    @pytest.mark.parametrize("sql", [None, 42, b"SELECT 1"])
    def test_non_string_rejected(self, validator, sql):
        assert validator.validate(sql).error_message == NOT_PERMITTED
        with pytest.raises(RejectedStatement):
            validator.ensure_read_only(sql)
